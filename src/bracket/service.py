"""
Tournament service: the engine's command and event surface.

Every operation runs inside ``store.transaction()`` so a tournament is
mutated by one caller at a time, whether the caller is a request handler or
a firing timer. Timers capture the match generation when scheduled and do
nothing if the match has moved on by the time they fire. Events are
published after the transaction has been saved.
"""
import logging
import random
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from bracket import builder, lifecycle, propagation, registry
from bracket.errors import (
    ConfigurationError, MatchNotFound, TournamentNotFound, TournamentNotRunning,
)
from bracket.events import (
    BracketBuilt, EventBus, FixturesAssigned, MatchAdvanced, MatchEnteredVoting, MatchFinished,
    MatchOpened, RegistrationChanged, RoundPropagated, TournamentFinished,
)
from bracket.models import (
    Match, MatchStatus, Participant, Pending, Tournament, TournamentStatus, Voting, to_local_naive,
)
from bracket.scheduler import REPLY_TIMER, VOTE_TIMER, TimerRegistry
from bracket.settings import EngineSettings
from bracket.store import TournamentStore

logger = logging.getLogger(__name__)


def _participant_dict(participant: Optional[Participant]) -> Optional[dict]:
    return {'id': participant.id, 'display_name': participant.display_name} if participant else None


def _match_payload(match: Match) -> dict:
    return {
        'match_id': match.id,
        'p1': _participant_dict(match.slot_p1),
        'p2': _participant_dict(match.slot_p2),
        'channel_id': match.channel_id,
    }


class TournamentService:
    def __init__(self, store: TournamentStore, settings: EngineSettings = None,
                 timers: TimerRegistry = None, events: EventBus = None,
                 clock: Callable[[], datetime] = datetime.now, rng: random.Random = None):
        self.store = store
        self.settings = settings or EngineSettings()
        self.timers = timers or TimerRegistry()
        self.events = events or EventBus()
        self.clock = clock
        self.rng = rng or random.Random()

    # Helpers

    def _run(self, tournament_id: str, operation):
        """Run ``operation(tournament, pending_events)`` in a transaction, then publish."""
        pending_events = []
        with self.store.transaction(tournament_id) as tournament:
            result = operation(tournament, pending_events)
        self.events.publish_all(pending_events)
        return result

    def _require_running(self, tournament: Tournament):
        if tournament.status != TournamentStatus.RUNNING:
            raise TournamentNotRunning()

    def _delay_until(self, when: datetime) -> float:
        return (when - self.clock()).total_seconds()

    def _schedule_reply_timer(self, tournament: Tournament, match: Match):
        self.timers.cancel((tournament.id, match.id, VOTE_TIMER))
        self.timers.schedule((tournament.id, match.id, REPLY_TIMER), self._delay_until(match.deadline),
                             self.handle_reply_timeout, tournament.id, match.id, match.generation)

    def _schedule_vote_timer(self, tournament: Tournament, match: Match):
        self.timers.cancel((tournament.id, match.id, REPLY_TIMER))
        self.timers.schedule((tournament.id, match.id, VOTE_TIMER), self._delay_until(match.deadline),
                             self.handle_vote_window_closed, tournament.id, match.id, match.generation)

    def _voting_event(self, tournament: Tournament, match: Match) -> MatchEnteredVoting:
        return MatchEnteredVoting(tournament.id, closes_at=match.deadline, reason=match.state.reason,
                                  vote_channel=self.settings.channel('vote') or match.channel_id,
                                  **_match_payload(match))

    def _propagate(self, tournament: Tournament, events: list) -> List[Match]:
        changed = propagation.propagate(tournament)
        for match in changed:
            events.append(MatchOpened(tournament.id, ready=match.has_both_participants,
                                      **_match_payload(match)))
        if changed:
            events.append(RoundPropagated(tournament.id, match_ids=[m.id for m in changed]))
        return changed

    def _finish_tournament(self, tournament: Tournament, events: list):
        final = tournament.final_match
        tournament.champion = final.winner_participant if final else None
        tournament.status = TournamentStatus.FINISHED
        cancelled = self.timers.cancel_tournament(tournament.id)
        logger.info(f'Tournament {tournament.id} finished; champion '
                    f'{tournament.champion.display_name if tournament.champion else None}, '
                    f'{cancelled} timers cancelled')
        events.append(TournamentFinished(tournament.id, champion=_participant_dict(tournament.champion),
                                         channel=self.settings.channel('announce')))

    def _after_finish(self, tournament: Tournament, match: Match, events: list):
        """Common tail of every resolution path."""
        self.timers.cancel_match(tournament.id, match.id)
        events.append(MatchFinished(tournament.id, winner=match.winner,
                                    winner_participant=_participant_dict(match.winner_participant),
                                    resolved_by=match.state.resolved_by, **_match_payload(match)))
        self._propagate(tournament, events)
        if tournament.final_match is match:
            self._finish_tournament(tournament, events)

    # Tournament lifecycle

    def create_tournament(self, name: str, max_participants: int = None,
                          make_current: bool = True) -> Tournament:
        if max_participants is None:
            max_participants = self.settings.max_participants
        tournament = Tournament(None, name, max_participants=max_participants, created_at=self.clock())
        return self.store.create(tournament, make_current=make_current)

    def get_tournament(self, tournament_id: str) -> Tournament:
        return self.store.load(tournament_id)

    def current_tournament_id(self) -> str:
        tournament_id = self.store.get_current()
        if not tournament_id:
            raise TournamentNotFound('No current tournament.')
        return tournament_id

    def list_tournaments(self) -> List[Tournament]:
        return [self.store.load(tid) for tid in self.store.list_ids() if self.store.exists(tid)]

    def set_current_tournament(self, tournament_id: str):
        """Route inbound play events to ``tournament_id`` from now on."""
        self.store.set_current(tournament_id)
        logger.info(f'Current tournament is now {tournament_id}')

    def end_tournament(self, tournament_id: str) -> Tournament:
        def operation(tournament, events):
            if tournament.status == TournamentStatus.FINISHED:
                raise TournamentNotRunning('Tournament already finished.')
            self._finish_tournament(tournament, events)
            return tournament
        return self._run(tournament_id, operation)

    # Registration surface

    def register(self, tournament_id: str, participant_id, display_name: str = None) -> Participant:
        def operation(tournament, events):
            participant = Participant(participant_id, display_name or str(participant_id))
            registry.register(tournament, participant)
            events.append(RegistrationChanged(tournament.id, action='register',
                                              channel=self.settings.channel('registration'),
                                              participant=_participant_dict(participant),
                                              count=len(tournament.participants)))
            return participant
        return self._run(tournament_id, operation)

    def unregister(self, tournament_id: str, participant_id) -> Participant:
        def operation(tournament, events):
            participant = registry.unregister(tournament, participant_id)
            events.append(RegistrationChanged(tournament.id, action='unregister',
                                              channel=self.settings.channel('registration'),
                                              participant=_participant_dict(participant),
                                              count=len(tournament.participants)))
            return participant
        return self._run(tournament_id, operation)

    # Organizer command surface

    def close_registration(self, tournament_id: str) -> Tournament:
        """Freeze the participant list and build the bracket."""
        def operation(tournament, events):
            if tournament.status != TournamentStatus.REGISTRATION:
                raise TournamentNotRunning('Registration is already closed.')
            builder.build_bracket(tournament)
            prelim = tournament.prelim_round
            events.append(BracketBuilt(tournament.id, channel=self.settings.channel('bracket'),
                                       participants=len(tournament.participants),
                                       prelim_matches=len(prelim.matches) if prelim else 0,
                                       rounds=len(tournament.rounds)))
            for match in tournament.iter_matches():
                if match.status == MatchStatus.PENDING:
                    events.append(MatchOpened(tournament.id, ready=match.has_both_participants,
                                              **_match_payload(match)))
            # Prelim byes go straight through
            self._propagate(tournament, events)
            return tournament
        return self._run(tournament_id, operation)

    def assign_fixtures(self, tournament_id: str, round_index: int = 0) -> dict:
        """Spread a round's matches over the configured battle channels, round-robin."""
        channels = self.settings.battle_channels
        if not channels:
            raise ConfigurationError('No battle channels configured (battle_channels).')

        def operation(tournament, events):
            if not tournament.rounds:
                raise TournamentNotRunning('No bracket available.')
            if round_index < 0 or round_index >= len(tournament.rounds):
                raise MatchNotFound(f'Round {round_index} not found.')
            rnd = tournament.rounds[round_index]
            next_channel = 0
            fixtures = {}
            for match in rnd.matches:
                if not match.channel_id:
                    match.channel_id = channels[next_channel % len(channels)]
                    next_channel += 1
                fixtures[match.id] = match.channel_id
            events.append(FixturesAssigned(tournament.id, round_index=round_index,
                                           fixtures=[_match_payload(m) for m in rnd.matches]))
            return fixtures
        return self._run(tournament_id, operation)

    def open_vote(self, tournament_id: str, match_id: str, duration: timedelta = None) -> Match:
        window = duration or self.settings.vote_window

        def operation(tournament, events):
            self._require_running(tournament)
            _, match = tournament.find_match(match_id)
            lifecycle.open_vote(match, self.clock(), window)
            self._schedule_vote_timer(tournament, match)
            events.append(self._voting_event(tournament, match))
            return match
        return self._run(tournament_id, operation)

    def end_match(self, tournament_id: str, match_id: str, winner: str) -> Match:
        """Organizer decision. Cancels the match's timers so late firings do nothing."""
        def operation(tournament, events):
            self._require_running(tournament)
            _, match = tournament.find_match(match_id)
            lifecycle.decide(match, winner)
            logger.info(f'Match {match.id} ended by organizer: {match.winner}')
            self._after_finish(tournament, match, events)
            return match
        return self._run(tournament_id, operation)

    # Inbound play events (current tournament)

    def on_participant_post(self, match_id: str, actor_id, timestamp: datetime = None) -> Match:
        tournament_id = self.current_tournament_id()
        posted_at = to_local_naive(timestamp) or self.clock()

        def operation(tournament, events):
            self._require_running(tournament)
            _, match = tournament.find_match(match_id)
            entered_voting = lifecycle.record_post(
                match, actor_id, posted_at, self.settings.reply_timeout,
                self.settings.reply_threshold, self.settings.vote_window)
            if entered_voting:
                self._schedule_vote_timer(tournament, match)
                events.append(self._voting_event(tournament, match))
            else:
                self._schedule_reply_timer(tournament, match)
                events.append(MatchAdvanced(tournament.id, new_deadline=match.deadline,
                                            actor_id=str(actor_id), reply_count=match.reply_count,
                                            opponent=_participant_dict(match.opponent_of(actor_id)),
                                            **_match_payload(match)))
            return match
        return self._run(tournament_id, operation)

    def on_vote_cast(self, match_id: str, voter_id, choice: str) -> str:
        tournament_id = self.current_tournament_id()

        def operation(tournament, events):
            self._require_running(tournament)
            _, match = tournament.find_match(match_id)
            return lifecycle.cast_vote(match, voter_id, choice)
        return self._run(tournament_id, operation)

    # Timer callbacks

    def _stale(self, tournament: Tournament, match: Match, generation: int, kind: str) -> bool:
        if tournament.status != TournamentStatus.RUNNING or match.is_finished or match.generation != generation:
            logger.info(f'Ignoring stale {kind} timer for match {match.id} '
                        f'(generation {generation}, now {match.generation}, {match.status})')
            return True
        return False

    def handle_reply_timeout(self, tournament_id: str, match_id: str, generation: int) -> bool:
        """Reply deadline elapsed: open a vote. Returns False when the timer was stale."""
        def operation(tournament, events):
            _, match = tournament.find_match(match_id)
            if self._stale(tournament, match, generation, REPLY_TIMER):
                return False
            if not lifecycle.time_out(match, self.clock(), self.settings.vote_window):
                return False
            logger.info(f'Match {match.id} timed out waiting for a reply')
            self._schedule_vote_timer(tournament, match)
            events.append(self._voting_event(tournament, match))
            return True
        return self._run(tournament_id, operation)

    def handle_vote_window_closed(self, tournament_id: str, match_id: str, generation: int) -> bool:
        """Vote window elapsed: decide by majority. Returns False when the timer was stale."""
        def operation(tournament, events):
            _, match = tournament.find_match(match_id)
            if self._stale(tournament, match, generation, VOTE_TIMER):
                return False
            if lifecycle.close_vote(match, self.settings.vote_tie_break, self.rng) is None:
                return False
            self._after_finish(tournament, match, events)
            return True
        return self._run(tournament_id, operation)

    def resume(self, tournament_id: str) -> int:
        """Re-arm timers from persisted deadlines, e.g. after a restart."""
        tournament = self.store.load(tournament_id)
        if tournament.status != TournamentStatus.RUNNING:
            return 0
        armed = 0
        for match in tournament.iter_matches():
            if match.deadline is None:
                continue
            if isinstance(match.state, Pending):
                self._schedule_reply_timer(tournament, match)
                armed += 1
            elif isinstance(match.state, Voting):
                self._schedule_vote_timer(tournament, match)
                armed += 1
        logger.info(f'Resumed {armed} timers for {tournament_id}')
        return armed

    def resume_all(self) -> int:
        """Re-arm timers for every stored tournament; only running ones get any."""
        return sum(self.resume(tid) for tid in self.store.list_ids() if self.store.exists(tid))

    def shutdown(self):
        self.timers.cancel_all()
