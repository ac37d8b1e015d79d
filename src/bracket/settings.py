"""
Engine settings: timeouts, vote policy and channel bindings.

Settings live in a YAML file owned by the operator; the engine reads them
and never writes them back.
"""
import logging
import os
from datetime import timedelta

import yaml

from bracket.errors import ConfigurationError

logger = logging.getLogger(__name__)

TIE_BREAK_P1 = 'p1'
TIE_BREAK_RANDOM = 'random'
TIE_BREAK_POLICIES = (TIE_BREAK_P1, TIE_BREAK_RANDOM)


def get_default_settings() -> dict:
    """Return default settings."""
    return {
        'reply_timeout_hours': 24,
        'vote_window_hours': 24,
        'replies_per_side': 3,
        'vote_tie_break': TIE_BREAK_P1,
        'max_participants': 0,
        'channels': {
            'bracket': '',
            'registration': '',
            'announce': '',
            'vote': '',
        },
        'battle_channels': [],
        'organizer_role_ids': [],
        'gateway_webhook_url': '',
    }


class EngineSettings:
    def __init__(self, data=None):
        merged = get_default_settings()
        for key, value in (data or {}).items():
            if key == 'channels' and isinstance(value, dict):
                merged['channels'].update({k: v or '' for k, v in value.items()})
            else:
                merged[key] = value
        self._data = merged
        self._validate()

    def _validate(self):
        for key in ('reply_timeout_hours', 'vote_window_hours'):
            value = self._data[key]
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f'{key} must be a positive number of hours.')
        replies = self._data['replies_per_side']
        if not isinstance(replies, int) or replies < 1:
            raise ConfigurationError('replies_per_side must be a positive integer.')
        if self._data['vote_tie_break'] not in TIE_BREAK_POLICIES:
            raise ConfigurationError(
                f"vote_tie_break must be one of {', '.join(TIE_BREAK_POLICIES)}.")
        if not isinstance(self._data['battle_channels'], list):
            raise ConfigurationError('battle_channels must be a list.')

    @property
    def reply_timeout(self) -> timedelta:
        return timedelta(hours=self._data['reply_timeout_hours'])

    @property
    def vote_window(self) -> timedelta:
        return timedelta(hours=self._data['vote_window_hours'])

    @property
    def reply_threshold(self) -> int:
        """Accepted posts (both sides together) after which the match goes to a vote."""
        return 2 * self._data['replies_per_side']

    @property
    def vote_tie_break(self) -> str:
        return self._data['vote_tie_break']

    @property
    def max_participants(self) -> int:
        return self._data['max_participants'] or 0

    @property
    def battle_channels(self) -> list:
        return [str(c) for c in self._data['battle_channels'] if c]

    @property
    def organizer_role_ids(self) -> list:
        return [str(r) for r in self._data['organizer_role_ids'] if r]

    @property
    def gateway_webhook_url(self) -> str:
        return self._data['gateway_webhook_url'] or ''

    def channel(self, name: str) -> str:
        return self._data['channels'].get(name) or ''

    def to_dict(self) -> dict:
        return dict(self._data)


def load_settings(path: str = None) -> EngineSettings:
    """Load settings from YAML, falling back to defaults when the file is absent."""
    if not path or not os.path.exists(path):
        return EngineSettings()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        raise ConfigurationError(f'Settings file {os.path.basename(path)} is not valid YAML.')
    if data is not None and not isinstance(data, dict):
        raise ConfigurationError('Settings file must contain a mapping.')
    return EngineSettings(data)
