"""
Cancellable, keyed timers for reply deadlines and vote windows.

Keys are ``(tournament_id, match_id, kind)``. Scheduling a key that already
has a timer replaces it.
"""
import logging
import threading
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)

REPLY_TIMER = 'reply'
VOTE_TIMER = 'vote'


class TimerRegistry:
    def __init__(self):
        self._timers: Dict[Tuple, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, key: Tuple, delay_seconds: float, callback: Callable, *args):
        delay_seconds = max(0.0, delay_seconds)

        def _run():
            with self._lock:
                if self._timers.get(key) is timer:
                    del self._timers[key]
            try:
                callback(*args)
            except Exception:
                logger.exception(f'Timer {key} failed')

        timer = threading.Timer(delay_seconds, _run)
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(key, None)
            self._timers[key] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        logger.debug(f'Scheduled {key} in {delay_seconds:.0f}s')

    def cancel(self, key: Tuple) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_match(self, tournament_id, match_id):
        for kind in (REPLY_TIMER, VOTE_TIMER):
            self.cancel((tournament_id, match_id, kind))

    def cancel_tournament(self, tournament_id) -> int:
        with self._lock:
            keys = [k for k in self._timers if k[0] == tournament_id]
            timers = [self._timers.pop(k) for k in keys]
        for timer in timers:
            timer.cancel()
        return len(timers)

    def cancel_all(self):
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self):
        with self._lock:
            return sorted(self._timers)
