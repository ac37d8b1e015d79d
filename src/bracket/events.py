"""
Outbound events emitted by the engine.

Delivery is fire-and-forget: a failing subscriber is logged and never undoes
the state change that produced the event.
"""
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class Event:
    name = 'event'

    def __init__(self, tournament_id, **payload):
        self.tournament_id = tournament_id
        self.payload = payload

    def __getattr__(self, item):
        try:
            return self.__dict__['payload'][item]
        except KeyError:
            raise AttributeError(item) from None

    def to_dict(self) -> dict:
        return {'event': self.name, 'tournament_id': self.tournament_id, **self.payload}

    def __repr__(self):
        return f"{type(self).__name__}(tournament_id={self.tournament_id}, payload={self.payload})"


class RegistrationChanged(Event):
    name = 'registration_changed'


class BracketBuilt(Event):
    name = 'bracket_built'


class FixturesAssigned(Event):
    name = 'fixtures_assigned'


class MatchOpened(Event):
    name = 'match_opened'


class MatchAdvanced(Event):
    """A post was accepted; carries ``new_deadline`` and the opponent to notify."""
    name = 'match_advanced'


class MatchEnteredVoting(Event):
    name = 'match_entered_voting'


class MatchFinished(Event):
    name = 'match_finished'


class RoundPropagated(Event):
    name = 'round_propagated'


class TournamentFinished(Event):
    name = 'tournament_finished'


class EventBus:
    def __init__(self):
        self._subscribers: List[Callable] = []

    def subscribe(self, callback: Callable):
        self._subscribers.append(callback)
        return callback

    def publish(self, event: Event):
        logger.debug(f'Publishing {event!r}')
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f'Event subscriber failed for {event.name}')

    def publish_all(self, events):
        for event in events:
            self.publish(event)
