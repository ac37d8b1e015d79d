"""
Tests for participant registration.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket import registry
from bracket.errors import AlreadyRegistered, NotRegistered, RegistrationClosed, TournamentFull
from bracket.models import Participant, Tournament, TournamentStatus


@pytest.fixture
def tournament():
    return Tournament('cup', 'Cup')


def test_register_keeps_arrival_order(tournament):
    for name in ['Cara', 'Alice', 'Bob']:
        registry.register(tournament, Participant(name.lower(), name))
    assert [p.display_name for p in tournament.participants] == ['Cara', 'Alice', 'Bob']
    assert [p.joined_at for p in tournament.participants] == [1, 2, 3]


def test_register_twice_rejected(tournament):
    registry.register(tournament, Participant('u1', 'Alice'))
    with pytest.raises(AlreadyRegistered):
        registry.register(tournament, Participant('u1', 'Alice again'))
    assert len(tournament.participants) == 1


def test_register_when_full(tournament):
    tournament.max_participants = 2
    registry.register(tournament, Participant('u1', 'A'))
    registry.register(tournament, Participant('u2', 'B'))
    assert registry.is_full(tournament)
    with pytest.raises(TournamentFull):
        registry.register(tournament, Participant('u3', 'C'))


def test_zero_capacity_is_unlimited(tournament):
    for i in range(50):
        registry.register(tournament, Participant(f'u{i}', f'P{i}'))
    assert not registry.is_full(tournament)


def test_register_after_close(tournament):
    tournament.status = TournamentStatus.RUNNING
    with pytest.raises(RegistrationClosed):
        registry.register(tournament, Participant('u1', 'A'))


def test_closed_checked_before_full(tournament):
    tournament.max_participants = 1
    registry.register(tournament, Participant('u1', 'A'))
    tournament.status = TournamentStatus.RUNNING
    with pytest.raises(RegistrationClosed):
        registry.register(tournament, Participant('u2', 'B'))


def test_unregister_keeps_order(tournament):
    for i in range(1, 5):
        registry.register(tournament, Participant(f'u{i}', f'P{i}'))
    removed = registry.unregister(tournament, 'u2')
    assert removed.id == 'u2'
    assert [p.id for p in tournament.participants] == ['u1', 'u3', 'u4']


def test_rejoin_goes_to_the_back(tournament):
    for i in range(1, 4):
        registry.register(tournament, Participant(f'u{i}', f'P{i}'))
    registry.unregister(tournament, 'u1')
    registry.register(tournament, Participant('u1', 'P1'))
    assert [p.id for p in tournament.participants] == ['u2', 'u3', 'u1']


def test_unregister_unknown(tournament):
    with pytest.raises(NotRegistered):
        registry.unregister(tournament, 'ghost')


def test_unregister_after_close(tournament):
    registry.register(tournament, Participant('u1', 'A'))
    tournament.status = TournamentStatus.RUNNING
    with pytest.raises(NotRegistered):
        registry.unregister(tournament, 'u1')
    assert len(tournament.participants) == 1


def test_numeric_ids_are_strings(tournament):
    registry.register(tournament, Participant(1234, 'Numeric'))
    assert tournament.get_participant('1234').display_name == 'Numeric'
    with pytest.raises(AlreadyRegistered):
        registry.register(tournament, Participant('1234', 'Same'))
