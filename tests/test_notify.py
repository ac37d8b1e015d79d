"""
Tests for webhook delivery of engine events.
"""
import json
import pytest
import sys
import os
from datetime import datetime

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.events import EventBus, MatchAdvanced
from bracket.notify import WebhookNotifier


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


class FakeSession:
    def __init__(self, status_code=200):
        self.status_code = status_code
        self.posts = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({'url': url, 'body': json.loads(data), 'headers': headers, 'timeout': timeout})
        return FakeResponse(self.status_code)


def _event():
    return MatchAdvanced('cup', match_id='R1M1', new_deadline=datetime(2026, 3, 2, 12, 0), reply_count=1)


def test_posts_event_json():
    session = FakeSession()
    notifier = WebhookNotifier('http://gateway/events', api_key='secret', session=session)
    notifier(_event())

    sent = session.posts[0]
    assert sent['url'] == 'http://gateway/events'
    assert sent['body'] == {
        'event': 'match_advanced', 'tournament_id': 'cup', 'match_id': 'R1M1',
        'new_deadline': '2026-03-02T12:00:00', 'reply_count': 1,
    }
    assert sent['headers']['Authorization'] == 'Bearer secret'
    assert sent['timeout'] == 5


def test_no_auth_header_without_key():
    session = FakeSession()
    WebhookNotifier('http://gateway/events', session=session)(_event())
    assert 'Authorization' not in session.posts[0]['headers']


def test_gateway_error_raises():
    notifier = WebhookNotifier('http://gateway/events', session=FakeSession(503))
    with pytest.raises(requests.HTTPError):
        notifier(_event())


def test_gateway_error_does_not_stop_other_subscribers(caplog):
    bus = EventBus()
    seen = []
    bus.subscribe(WebhookNotifier('http://gateway/events', session=FakeSession(500)))
    bus.subscribe(seen.append)
    bus.publish(_event())
    assert len(seen) == 1
    assert 'subscriber failed' in caplog.text
