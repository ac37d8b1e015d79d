"""
Bracket data formatted for display.
"""
from typing import Dict

from bracket.builder import get_round_name, is_playable
from bracket.models import Match, Tournament


def _name(participant, placeholder: str) -> str:
    return participant.display_name if participant else placeholder


def describe_match(match: Match) -> Dict:
    return {
        'match_id': match.id,
        'teams': (_name(match.slot_p1, 'TBD'), _name(match.slot_p2, 'TBD')),
        'status': match.status,
        'is_playable': is_playable(match),
        'winner': _name(match.winner_participant, None) if match.winner else None,
        'deadline': match.deadline.isoformat() if match.deadline else None,
        'reply_count': match.reply_count,
        'votes': match.state.tally() if hasattr(match.state, 'tally') else None,
        'channel_id': match.channel_id,
    }


def get_bracket_display(tournament: Tournament) -> Dict:
    """
    Get bracket data formatted for UI display.

    Returns dict with:
    - 'rounds': list of {'name', 'is_prelim', 'matches'} in play order
    - 'total_participants', 'prelim_matches', 'bracket_size'
    - 'matches_per_round': round name -> number of matches
    - 'champion': display name, once decided
    """
    rounds = []
    matches_per_round = {}
    for rnd in tournament.rounds:
        round_name = get_round_name(2 * len(rnd.matches), rnd.is_prelim)
        rounds.append({
            'name': round_name,
            'is_prelim': rnd.is_prelim,
            'matches': [describe_match(m) for m in rnd.matches],
        })
        matches_per_round[round_name] = len(rnd.matches)

    main_rounds = tournament.main_rounds
    prelim = tournament.prelim_round
    return {
        'tournament_id': tournament.id,
        'name': tournament.name,
        'status': tournament.status,
        'participants': [p.display_name for p in tournament.participants],
        'rounds': rounds,
        'total_participants': len(tournament.participants),
        'prelim_matches': len(prelim.matches) if prelim else 0,
        'bracket_size': 2 * len(main_rounds[0].matches) if main_rounds else 0,
        'matches_per_round': matches_per_round,
        'champion': tournament.champion.display_name if tournament.champion else None,
    }
