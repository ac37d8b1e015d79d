"""
Single elimination bracket construction with an optional preliminary round.

For N participants the main bracket holds T = largest power of two <= N.
The surplus is trimmed by a preliminary round of N - T matches played by the
last 2 * (N - T) registrants; everybody else auto-qualifies, earliest
registrants first.
"""
import logging
from typing import List, Tuple

from bracket.errors import InsufficientParticipants
from bracket.models import (
    P1, P2, Finished, Locked, Match, Pending, Round, Tournament, TournamentStatus,
)

logger = logging.getLogger(__name__)


def get_round_name(teams_in_round: int, is_prelim: bool = False) -> str:
    """Get the name of a round based on number of participants."""
    if is_prelim:
        return "Prelims"
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_main_bracket_size(num_participants: int) -> int:
    """Largest power of two not exceeding the participant count."""
    if num_participants < 1:
        return 0
    return 1 << (num_participants.bit_length() - 1)


def calculate_prelim_players(num_participants: int) -> int:
    """Number of registrants routed into the preliminary round (always even)."""
    return 2 * (num_participants - calculate_main_bracket_size(num_participants))


def feeder_target(match_index: int) -> Tuple[int, str]:
    """
    Where the winner of a match goes in the next round.

    Match i feeds match i // 2, as P1 when i is even and P2 when odd.
    """
    return match_index // 2, (P1 if match_index % 2 == 0 else P2)


def prelim_target(first_round_matches: int, prelim_matches: int, prelim_index: int) -> Tuple[int, str]:
    """
    Where the winner of a preliminary match lands in the main first round.

    The first round's empty slots are the trailing ``prelim_matches`` slots;
    prelim match k fills the k-th of them, left to right.
    """
    slot = 2 * first_round_matches - prelim_matches + prelim_index
    return slot // 2, (P1 if slot % 2 == 0 else P2)


def _build_prelim_round(prelim_players) -> Round:
    prelim = Round(0, is_prelim=True)
    for i in range(0, len(prelim_players), 2):
        p1 = prelim_players[i]
        p2 = prelim_players[i + 1] if i + 1 < len(prelim_players) else None
        match = Match(f'P{i // 2 + 1}', p1, p2)
        if p2 is None:
            # Bye: nobody to play, the lone participant goes through
            match.state = Finished(P1, Finished.RESOLVED_BY_BYE)
        prelim.matches.append(match)
    return prelim


def generate_rounds(participants) -> List[Round]:
    """
    Build the full round list for the participants, in registration order.

    Only the preliminary round and the main first round hold participants;
    every later round starts out locked and is filled by propagation.
    """
    num_participants = len(participants)
    if num_participants < 2:
        raise InsufficientParticipants()

    bracket_size = calculate_main_bracket_size(num_participants)
    prelim_count = calculate_prelim_players(num_participants)
    direct_count = num_participants - prelim_count

    direct_players = list(participants[:direct_count])
    prelim_players = list(participants[direct_count:])

    rounds = []
    if prelim_players:
        rounds.append(_build_prelim_round(prelim_players))

    # First main round: auto-qualified players in order, trailing slots left for prelim winners
    slots = direct_players + [None] * (bracket_size - direct_count)
    first_round = Round(len(rounds))
    for i in range(0, bracket_size, 2):
        first_round.matches.append(Match(f'R1M{i // 2 + 1}', slots[i], slots[i + 1]))
    rounds.append(first_round)

    match_count = len(first_round.matches)
    round_number = 1
    while match_count > 1:
        match_count = (match_count + 1) // 2
        round_number += 1
        rnd = Round(len(rounds))
        for i in range(match_count):
            rnd.matches.append(Match(f'R{round_number}M{i + 1}', state=Locked()))
        rounds.append(rnd)

    return rounds


def build_bracket(tournament: Tournament) -> List[Round]:
    """
    Freeze registration and write the bracket into the tournament.

    The rounds are assigned in one step and the tournament moves to running.
    """
    rounds = generate_rounds(tournament.participants)
    tournament.rounds = rounds
    tournament.status = TournamentStatus.RUNNING

    prelim_matches = len(rounds[0].matches) if rounds[0].is_prelim else 0
    logger.info(f'Built bracket for {tournament.id}: {len(tournament.participants)} participants, '
                f'{prelim_matches} prelim matches, {len(rounds)} rounds')
    return rounds


def is_playable(match: Match) -> bool:
    """Both participants known and no result yet."""
    return match.has_both_participants and isinstance(match.state, Pending)
