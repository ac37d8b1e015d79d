"""
Tournament aggregate: participants, rounds and matches.

A match's lifecycle state is a tagged variant (one class per state) carrying
only the fields that state needs. ``Match`` exposes the common fields as
read-only properties so callers never poke at a half-populated record.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from bracket.errors import AlreadyDecided, InvalidWinnerToken, MatchNotFound

P1 = 'p1'
P2 = 'p2'
WINNER_TOKENS = (P1, P2)


class TournamentStatus:
    REGISTRATION = 'registration'
    RUNNING = 'running'
    FINISHED = 'finished'


class MatchStatus:
    LOCKED = 'locked'
    PENDING = 'pending'
    VOTING = 'voting'
    TIMED_OUT = 'timed_out'
    FINISHED = 'finished'


def _dump_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _load_time(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Deadlines are naive local time; convert offset-aware timestamps into that."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def validate_winner_token(token) -> str:
    """Normalize a winner token ('p1'/'p2', any case) or raise InvalidWinnerToken."""
    normalized = str(token or '').strip().lower()
    if normalized not in WINNER_TOKENS:
        raise InvalidWinnerToken()
    return normalized


class Participant:
    def __init__(self, id, display_name, joined_at=0):
        self.id = str(id)
        self.display_name = display_name
        self.joined_at = joined_at  # registration sequence number

    def to_dict(self) -> dict:
        return {'id': self.id, 'display_name': self.display_name, 'joined_at': self.joined_at}

    @classmethod
    def from_dict(cls, data: dict) -> 'Participant':
        return cls(data['id'], data.get('display_name', data['id']), data.get('joined_at', 0))

    def __eq__(self, other):
        return isinstance(other, Participant) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Participant(id={self.id}, display_name={self.display_name})"


# Match states

class Locked:
    status = MatchStatus.LOCKED

    def to_dict(self) -> dict:
        return {'status': self.status}

    @classmethod
    def from_dict(cls, data: dict) -> 'Locked':
        return cls()


class Pending:
    status = MatchStatus.PENDING

    def __init__(self, deadline=None, last_actor=None, reply_count=0):
        self.deadline = deadline
        self.last_actor = last_actor
        self.reply_count = reply_count

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'deadline': _dump_time(self.deadline),
            'last_actor': self.last_actor,
            'reply_count': self.reply_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Pending':
        return cls(_load_time(data.get('deadline')), data.get('last_actor'), data.get('reply_count', 0))


class TimedOut:
    """Reply deadline elapsed; the controller moves straight on to a vote."""
    status = MatchStatus.TIMED_OUT

    def __init__(self, timed_out_at=None, reply_count=0):
        self.timed_out_at = timed_out_at
        self.reply_count = reply_count

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'timed_out_at': _dump_time(self.timed_out_at),
            'reply_count': self.reply_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TimedOut':
        return cls(_load_time(data.get('timed_out_at')), data.get('reply_count', 0))


class Voting:
    REASON_REPLIES = 'replies'
    REASON_TIMEOUT = 'timeout'
    REASON_ORGANIZER = 'organizer'

    status = MatchStatus.VOTING

    def __init__(self, closes_at=None, votes=None, reason=REASON_ORGANIZER):
        self.closes_at = closes_at
        self.votes = dict(votes) if votes else {}
        self.reason = reason

    def tally(self) -> Dict[str, int]:
        counts = {P1: 0, P2: 0}
        for choice in self.votes.values():
            counts[choice] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'closes_at': _dump_time(self.closes_at),
            'votes': dict(self.votes),
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Voting':
        return cls(_load_time(data.get('closes_at')), data.get('votes') or {},
                   data.get('reason', cls.REASON_ORGANIZER))


class Finished:
    RESOLVED_BY_ORGANIZER = 'organizer'
    RESOLVED_BY_VOTE = 'vote'
    RESOLVED_BY_BYE = 'bye'

    status = MatchStatus.FINISHED

    def __init__(self, winner, resolved_by=RESOLVED_BY_ORGANIZER):
        self.winner = winner
        self.resolved_by = resolved_by

    def to_dict(self) -> dict:
        return {'status': self.status, 'winner': self.winner, 'resolved_by': self.resolved_by}

    @classmethod
    def from_dict(cls, data: dict) -> 'Finished':
        return cls(data['winner'], data.get('resolved_by', cls.RESOLVED_BY_ORGANIZER))


STATE_TYPES = {cls.status: cls for cls in (Locked, Pending, TimedOut, Voting, Finished)}


class Match:
    def __init__(self, id, slot_p1=None, slot_p2=None, state=None, channel_id=None, generation=0):
        self.id = id
        self.slot_p1 = slot_p1
        self.slot_p2 = slot_p2
        if state is None:
            state = Pending() if (slot_p1 or slot_p2) else Locked()
        self.state = state
        self.channel_id = channel_id
        # Bumped on every state change; timers compare against it when they fire.
        self.generation = generation

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def is_finished(self) -> bool:
        return self.state.status == MatchStatus.FINISHED

    @property
    def winner(self) -> Optional[str]:
        return self.state.winner if self.is_finished else None

    @property
    def winner_participant(self) -> Optional[Participant]:
        return self.participant(self.winner) if self.winner else None

    @property
    def deadline(self) -> Optional[datetime]:
        if isinstance(self.state, Pending):
            return self.state.deadline
        if isinstance(self.state, Voting):
            return self.state.closes_at
        return None

    @property
    def last_actor(self) -> Optional[str]:
        return getattr(self.state, 'last_actor', None)

    @property
    def reply_count(self) -> int:
        return getattr(self.state, 'reply_count', 0)

    @property
    def votes(self) -> Dict[str, str]:
        return dict(self.state.votes) if isinstance(self.state, Voting) else {}

    @property
    def has_both_participants(self) -> bool:
        return self.slot_p1 is not None and self.slot_p2 is not None

    def participant(self, token: str) -> Optional[Participant]:
        return self.slot_p1 if token == P1 else self.slot_p2

    def slot_of(self, participant_id) -> Optional[str]:
        """Return 'p1'/'p2' for a participant of this match, else None."""
        if self.slot_p1 is not None and self.slot_p1.id == str(participant_id):
            return P1
        if self.slot_p2 is not None and self.slot_p2.id == str(participant_id):
            return P2
        return None

    def opponent_of(self, participant_id) -> Optional[Participant]:
        token = self.slot_of(participant_id)
        if token is None:
            return None
        return self.slot_p2 if token == P1 else self.slot_p1

    def transition(self, state):
        if self.is_finished:
            raise AlreadyDecided(f'Match {self.id} already decided.')
        self.state = state
        self.generation += 1

    def fill_slot(self, token: str, participant: Participant) -> bool:
        """Place a participant into an empty slot. Returns False if the slot is taken or the match is decided."""
        if self.is_finished or self.participant(token) is not None:
            return False
        if token == P1:
            self.slot_p1 = participant
        else:
            self.slot_p2 = participant
        if isinstance(self.state, Locked):
            self.transition(Pending())
        return True

    def finish(self, winner: str, resolved_by: str = Finished.RESOLVED_BY_ORGANIZER):
        """Set the terminal winner. Raises AlreadyDecided if a winner exists."""
        if self.is_finished:
            raise AlreadyDecided(f'Match {self.id} already decided.')
        winner = validate_winner_token(winner)
        self.transition(Finished(winner, resolved_by))

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'p1': self.slot_p1.to_dict() if self.slot_p1 else None,
            'p2': self.slot_p2.to_dict() if self.slot_p2 else None,
            'state': self.state.to_dict(),
            'channel_id': self.channel_id,
            'generation': self.generation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Match':
        state_data = data.get('state') or {'status': MatchStatus.LOCKED}
        state = STATE_TYPES[state_data['status']].from_dict(state_data)
        return cls(
            data['id'],
            Participant.from_dict(data['p1']) if data.get('p1') else None,
            Participant.from_dict(data['p2']) if data.get('p2') else None,
            state=state,
            channel_id=data.get('channel_id'),
            generation=data.get('generation', 0),
        )

    def __repr__(self):
        p1 = self.slot_p1.display_name if self.slot_p1 else None
        p2 = self.slot_p2.display_name if self.slot_p2 else None
        return f"Match(id={self.id}, p1={p1}, p2={p2}, status={self.status}, winner={self.winner})"


class Round:
    def __init__(self, index, is_prelim=False, matches=None):
        self.index = index
        self.is_prelim = is_prelim
        self.matches = matches if matches else []

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'is_prelim': self.is_prelim,
            'matches': [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Round':
        return cls(data['index'], data.get('is_prelim', False),
                   [Match.from_dict(m) for m in data.get('matches', [])])

    def __repr__(self):
        return f"Round(index={self.index}, is_prelim={self.is_prelim}, matches={len(self.matches)})"


class Tournament:
    def __init__(self, id, name, status=TournamentStatus.REGISTRATION, participants=None,
                 rounds=None, max_participants=0, created_at=None, champion=None):
        self.id = id
        self.name = name
        self.status = status
        self.participants = participants if participants else []
        self.rounds = rounds if rounds else []
        self.max_participants = max_participants or 0
        self.created_at = created_at or datetime.now()
        self.champion = champion

    @property
    def prelim_round(self) -> Optional[Round]:
        if self.rounds and self.rounds[0].is_prelim:
            return self.rounds[0]
        return None

    @property
    def main_rounds(self) -> List[Round]:
        return [r for r in self.rounds if not r.is_prelim]

    @property
    def final_match(self) -> Optional[Match]:
        main = self.main_rounds
        return main[-1].matches[0] if main and main[-1].matches else None

    def iter_matches(self):
        for rnd in self.rounds:
            for match in rnd.matches:
                yield match

    def find_match(self, match_id) -> Tuple[Round, Match]:
        for rnd in self.rounds:
            for match in rnd.matches:
                if match.id == match_id:
                    return rnd, match
        raise MatchNotFound(f'Match {match_id} not found.')

    def get_participant(self, participant_id) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == str(participant_id)), None)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'participants': [p.to_dict() for p in self.participants],
            'rounds': [r.to_dict() for r in self.rounds],
            'max_participants': self.max_participants,
            'created_at': _dump_time(self.created_at),
            'champion': self.champion.to_dict() if self.champion else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Tournament':
        return cls(
            data['id'],
            data.get('name', data['id']),
            status=data.get('status', TournamentStatus.REGISTRATION),
            participants=[Participant.from_dict(p) for p in data.get('participants') or []],
            rounds=[Round.from_dict(r) for r in data.get('rounds') or []],
            max_participants=data.get('max_participants', 0),
            created_at=_load_time(data.get('created_at')),
            champion=Participant.from_dict(data['champion']) if data.get('champion') else None,
        )

    def __repr__(self):
        return (f"Tournament(id={self.id}, name={self.name}, status={self.status}, "
                f"participants={len(self.participants)}, rounds={len(self.rounds)})")
