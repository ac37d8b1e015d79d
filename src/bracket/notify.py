"""
Deliver engine events to the chat gateway over HTTP.
"""
import json
import logging
from datetime import datetime

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5


def _encode(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f'Cannot encode {type(value).__name__}')


class WebhookNotifier:
    """EventBus subscriber that POSTs each event as JSON to ``url``."""

    def __init__(self, url: str, api_key: str = None, timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 session: requests.Session = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, event):
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        body = json.dumps(event.to_dict(), default=_encode)
        # Errors propagate; the EventBus logs them and moves on
        response = self.session.post(self.url, data=body, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        logger.debug(f'Delivered {event.name} to {self.url} ({response.status_code})')
