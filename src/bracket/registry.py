"""
Participant registration for a tournament that has not started yet.
"""
import logging

from bracket.errors import AlreadyRegistered, NotRegistered, RegistrationClosed, TournamentFull
from bracket.models import Participant, Tournament, TournamentStatus

logger = logging.getLogger(__name__)


def is_full(tournament: Tournament) -> bool:
    return tournament.max_participants > 0 and len(tournament.participants) >= tournament.max_participants


def register(tournament: Tournament, participant: Participant) -> Participant:
    """Append a participant, keeping arrival order (first come, first seeded)."""
    if tournament.status != TournamentStatus.REGISTRATION:
        raise RegistrationClosed()
    if is_full(tournament):
        raise TournamentFull()
    if tournament.get_participant(participant.id) is not None:
        raise AlreadyRegistered()

    last_seq = max((p.joined_at for p in tournament.participants), default=0)
    participant.joined_at = max(participant.joined_at, last_seq + 1)
    tournament.participants.append(participant)
    logger.info(f'{participant.display_name} registered for {tournament.id} '
                f'({len(tournament.participants)} participants)')
    return participant


def unregister(tournament: Tournament, participant_id) -> Participant:
    """Remove a participant; the remaining entries keep their relative order."""
    participant = tournament.get_participant(participant_id)
    if participant is None or tournament.status != TournamentStatus.REGISTRATION:
        raise NotRegistered()
    tournament.participants.remove(participant)
    logger.info(f'{participant.display_name} unregistered from {tournament.id}')
    return participant
