"""
Advance decided winners into their next-round slots.

Propagation only writes into empty slots, so running it again without new
results leaves the bracket untouched.
"""
import logging
from typing import List

from bracket.builder import feeder_target, prelim_target
from bracket.models import Match, Tournament

logger = logging.getLogger(__name__)


def _place(match: Match, token: str, winner_match: Match, changed: List[Match]):
    participant = winner_match.winner_participant
    if participant is None:
        return
    if match.fill_slot(token, participant):
        logger.info(f'{participant.display_name} advances from {winner_match.id} to {match.id} ({token})')
        if match not in changed:
            changed.append(match)


def fold_in_prelims(tournament: Tournament) -> List[Match]:
    """Move preliminary winners into the main first round's reserved slots."""
    changed = []
    prelim = tournament.prelim_round
    if prelim is None:
        return changed
    first_round = tournament.main_rounds[0]
    for k, prelim_match in enumerate(prelim.matches):
        if not prelim_match.is_finished:
            continue
        match_index, token = prelim_target(len(first_round.matches), len(prelim.matches), k)
        _place(first_round.matches[match_index], token, prelim_match, changed)
    return changed


def advance_winners(tournament: Tournament) -> List[Match]:
    """Forward propagation over adjacent main rounds."""
    changed = []
    main_rounds = tournament.main_rounds
    for current, following in zip(main_rounds, main_rounds[1:]):
        for i, match in enumerate(current.matches):
            if not match.is_finished:
                continue
            match_index, token = feeder_target(i)
            if match_index >= len(following.matches):
                continue
            _place(following.matches[match_index], token, match, changed)
    return changed


def propagate(tournament: Tournament) -> List[Match]:
    """
    Run prelim fold-in then forward propagation.

    Returns the matches that received a participant, in the order filled.
    """
    changed = fold_in_prelims(tournament)
    for match in advance_winners(tournament):
        if match not in changed:
            changed.append(match)
    return changed
