"""
Tests for engine settings loading and validation.
"""
import pytest
import sys
import os
import yaml
from datetime import timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.errors import ConfigurationError
from bracket.settings import EngineSettings, get_default_settings, load_settings


def test_defaults():
    settings = EngineSettings()
    assert settings.reply_timeout == timedelta(hours=24)
    assert settings.vote_window == timedelta(hours=24)
    assert settings.reply_threshold == 6
    assert settings.vote_tie_break == 'p1'
    assert settings.max_participants == 0
    assert settings.battle_channels == []
    assert settings.channel('announce') == ''
    assert settings.gateway_webhook_url == ''


def test_default_settings_are_fresh_copies():
    first = get_default_settings()
    first['channels']['bracket'] = 'changed'
    assert get_default_settings()['channels']['bracket'] == ''


def test_overrides_merge_over_defaults():
    settings = EngineSettings({
        'replies_per_side': 2,
        'channels': {'vote': 'vote-room'},
        'battle_channels': ['b1', 123],
        'organizer_role_ids': [987],
    })
    assert settings.reply_threshold == 4
    assert settings.channel('vote') == 'vote-room'
    assert settings.channel('bracket') == ''
    assert settings.battle_channels == ['b1', '123']
    assert settings.organizer_role_ids == ['987']
    assert settings.reply_timeout == timedelta(hours=24)


@pytest.mark.parametrize('data', [
    {'reply_timeout_hours': 0},
    {'vote_window_hours': -1},
    {'vote_window_hours': 'soon'},
    {'replies_per_side': 0},
    {'vote_tie_break': 'coin'},
    {'battle_channels': 'battle-1'},
])
def test_invalid_values(data):
    with pytest.raises(ConfigurationError):
        EngineSettings(data)


def test_fractional_hours():
    assert EngineSettings({'vote_window_hours': 0.5}).vote_window == timedelta(minutes=30)


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / 'absent.yaml'))
        assert settings.to_dict() == get_default_settings()

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text(yaml.dump({'vote_tie_break': 'random', 'max_participants': 32}))
        settings = load_settings(str(path))
        assert settings.vote_tie_break == 'random'
        assert settings.max_participants == 32

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('')
        assert load_settings(str(path)).reply_threshold == 6

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('channels: [unclosed')
        with pytest.raises(ConfigurationError):
            load_settings(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('- just\n- a list\n')
        with pytest.raises(ConfigurationError):
            load_settings(str(path))
