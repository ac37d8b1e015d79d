"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
from datetime import datetime, timedelta

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.events import EventBus
from bracket.models import Participant, Tournament
from bracket.service import TournamentService
from bracket.settings import EngineSettings
from bracket.store import TournamentStore

ORGANIZER_KEY = 'test-organizer-key'


class FakeClock:
    """Manually advanced clock."""
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class ManualTimers:
    """TimerRegistry double: records scheduled timers and fires them on demand."""
    def __init__(self):
        self.scheduled = {}
        self.cancelled = []

    def schedule(self, key, delay_seconds, callback, *args):
        self.scheduled[key] = (delay_seconds, callback, args)

    def cancel(self, key):
        if key in self.scheduled:
            del self.scheduled[key]
            self.cancelled.append(key)
            return True
        return False

    def cancel_match(self, tournament_id, match_id):
        for kind in ('reply', 'vote'):
            self.cancel((tournament_id, match_id, kind))

    def cancel_tournament(self, tournament_id):
        keys = [k for k in self.scheduled if k[0] == tournament_id]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self):
        for key in list(self.scheduled):
            self.cancel(key)

    def fire(self, key):
        """Run a scheduled timer, as the timer thread would. Returns the callback result."""
        _, callback, args = self.scheduled.pop(key)
        return callback(*args)

    def capture(self, key):
        """Grab a scheduled timer so it can be fired later even if rescheduled or cancelled."""
        _, callback, args = self.scheduled[key]
        return lambda: callback(*args)


def make_participants(count, start=1):
    return [Participant(f'u{i}', f'Player {i}', joined_at=i) for i in range(start, start + count)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def settings():
    return EngineSettings({
        'reply_timeout_hours': 24,
        'vote_window_hours': 12,
        'replies_per_side': 3,
        'vote_tie_break': 'p1',
        'battle_channels': ['battle-1', 'battle-2'],
    })


@pytest.fixture
def store(tmp_path):
    return TournamentStore(str(tmp_path / 'data'))


@pytest.fixture
def event_log():
    return []


@pytest.fixture
def service(store, settings, timers, clock, event_log):
    events = EventBus()
    events.subscribe(event_log.append)
    return TournamentService(store, settings, timers=timers, events=events, clock=clock)


@pytest.fixture
def registration_tournament(service):
    """A tournament in registration, set as current."""
    return service.create_tournament('Spring Cup')


def start_tournament(service, count):
    """Create a current tournament with ``count`` registrants and build its bracket."""
    tournament = service.create_tournament(f'Cup of {count}')
    for participant in make_participants(count):
        service.register(tournament.id, participant.id, participant.display_name)
    return service.close_registration(tournament.id)


@pytest.fixture
def running_tournament(service):
    """Four players, no prelims: R1M1 u1-u2, R1M2 u3-u4, R2M1 final."""
    return start_tournament(service, 4)


@pytest.fixture
def sample_tournament():
    return Tournament('cup', 'Cup', participants=make_participants(5))


@pytest.fixture
def client(service, monkeypatch):
    """Flask test client wired to the test service."""
    import app as app_module
    monkeypatch.setattr(app_module, '_service', service)
    monkeypatch.setenv('ORGANIZER_API_KEY', ORGANIZER_KEY)
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def organizer_headers():
    return {'Authorization': f'Bearer {ORGANIZER_KEY}'}
