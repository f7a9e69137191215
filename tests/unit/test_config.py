"""Unit tests for timer settings."""

import pytest

from pomoquest.core.config import Settings, TimerSettings, merge_timer_settings
from pomoquest.core.exceptions import SettingsValidationError


class TestTimerSettings:

    def test_defaults(self):
        timer = TimerSettings()
        assert timer.focus_duration == 25
        assert timer.short_break_duration == 5
        assert timer.long_break_duration == 15
        assert timer.sessions_until_long_break == 4

    def test_merge_applies_overrides(self):
        merged = merge_timer_settings(TimerSettings(), {"focus_duration": 50, "auto_start_breaks": True})
        assert merged.focus_duration == 50
        assert merged.auto_start_breaks is True
        assert merged.short_break_duration == 5

    def test_merge_without_overrides_returns_current(self):
        current = TimerSettings(focus_duration=30)
        assert merge_timer_settings(current, None) is current

    @pytest.mark.parametrize("overrides", [
        {"focus_duration": 0},
        {"focus_duration": 121},
        {"short_break_duration": 31},
        {"sessions_until_long_break": 13},
    ])
    def test_out_of_range_rejected(self, overrides):
        with pytest.raises(SettingsValidationError) as exc:
            merge_timer_settings(TimerSettings(), overrides)
        assert exc.value.fields == list(overrides)

    def test_unknown_key_rejected(self):
        with pytest.raises(SettingsValidationError) as exc:
            merge_timer_settings(TimerSettings(), {"turbo": True})
        assert exc.value.fields == ["turbo"]


class TestServiceSettings:

    def test_cors_origins_from_comma_separated_string(self):
        settings = Settings(CORS_ORIGINS="http://a.test, http://b.test")
        assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]
