"""
Match state transitions.

These functions mutate a single ``Match`` and know nothing about storage,
timers or events; ``TournamentService`` runs them inside the tournament's
critical section and reacts to what they return.
"""
import logging
import random
from datetime import datetime, timedelta
from typing import Optional

from bracket.errors import (
    AlreadyDecided, AlreadyVoted, MatchNotReady, NotAParticipant, NotYourTurn, VoteNotOpen,
)
from bracket.models import (
    P1, P2, Finished, Match, MatchStatus, Pending, TimedOut, Voting, validate_winner_token,
)
from bracket.settings import TIE_BREAK_RANDOM

logger = logging.getLogger(__name__)


def _require_open(match: Match):
    if match.is_finished:
        raise AlreadyDecided(f'Match {match.id} already decided.')


def record_post(match: Match, actor_id, timestamp: datetime, reply_timeout: timedelta,
                reply_threshold: int, vote_window: timedelta) -> bool:
    """
    Accept a participant's post.

    Players must alternate. Each accepted post resets the reply deadline.
    Returns True when the post reaches the reply threshold and the match has
    moved to a vote.
    """
    _require_open(match)
    if match.slot_of(actor_id) is None:
        raise NotAParticipant()
    if not match.has_both_participants:
        raise MatchNotReady()
    if not isinstance(match.state, Pending):
        raise MatchNotReady(f'Match {match.id} is being voted on.')
    if match.last_actor == str(actor_id):
        raise NotYourTurn()

    reply_count = match.reply_count + 1
    if reply_count >= reply_threshold:
        return _enter_voting(match, timestamp, vote_window, Voting.REASON_REPLIES)

    match.transition(Pending(timestamp + reply_timeout, str(actor_id), reply_count))
    return False


def _enter_voting(match: Match, now: datetime, window: timedelta, reason: str) -> bool:
    match.transition(Voting(now + window, reason=reason))
    logger.info(f'Match {match.id} entered voting ({reason})')
    return True


def open_vote(match: Match, now: datetime, window: timedelta, reason: str = Voting.REASON_ORGANIZER):
    """Open a vote window on a match whose two participants are known."""
    _require_open(match)
    if not match.has_both_participants:
        raise MatchNotReady()
    if isinstance(match.state, Voting):
        raise MatchNotReady(f'Voting is already open for match {match.id}.')
    _enter_voting(match, now, window, reason)


def time_out(match: Match, now: datetime, window: timedelta) -> bool:
    """
    Reply deadline elapsed: pass through TimedOut and open a vote.

    Returns False (no change) when the match is no longer waiting on a reply.
    """
    if match.is_finished or not isinstance(match.state, Pending):
        return False
    if not match.has_both_participants:
        return False
    match.transition(TimedOut(now, match.reply_count))
    return _enter_voting(match, now, window, Voting.REASON_TIMEOUT)


def cast_vote(match: Match, voter_id, choice) -> str:
    _require_open(match)
    if not isinstance(match.state, Voting):
        raise VoteNotOpen()
    choice = validate_winner_token(choice)
    voter_id = str(voter_id)
    if voter_id in match.state.votes:
        raise AlreadyVoted()
    match.state.votes[voter_id] = choice
    return choice


def tally_winner(votes: dict, tie_break: str, rng: random.Random = None) -> str:
    """Majority choice; ties (including no votes) go to the configured policy."""
    counts = {P1: 0, P2: 0}
    for choice in votes.values():
        counts[choice] += 1
    if counts[P1] > counts[P2]:
        return P1
    if counts[P2] > counts[P1]:
        return P2
    if tie_break == TIE_BREAK_RANDOM:
        return (rng or random).choice([P1, P2])
    return P1


def close_vote(match: Match, tie_break: str, rng: random.Random = None) -> Optional[str]:
    """
    Close the vote window and decide the match.

    Returns the winner token, or None when the match was not voting (already
    decided or otherwise moved on), in which case nothing changes.
    """
    if match.status != MatchStatus.VOTING:
        return None
    winner = tally_winner(match.state.votes, tie_break, rng)
    match.finish(winner, Finished.RESOLVED_BY_VOTE)
    logger.info(f'Match {match.id} decided by vote: {winner}')
    return winner


def decide(match: Match, winner) -> str:
    """Organizer decision; both participants must be known."""
    winner = validate_winner_token(winner)
    _require_open(match)
    if not match.has_both_participants:
        raise MatchNotReady()
    match.finish(winner, Finished.RESOLVED_BY_ORGANIZER)
    return winner
