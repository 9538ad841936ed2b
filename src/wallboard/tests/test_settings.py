import pytest

from wallboard import settings
from wallboard.models import DisplayPreferences


@pytest.mark.parametrize("raw", ["1000", "2000", "5000"])
def test_poll_interval_accepts_known_options(raw):
    assert settings.poll_interval(raw) == int(raw)


@pytest.mark.parametrize("raw", [None, "", "3000", "abc", "-1"])
def test_poll_interval_falls_back_to_default(raw):
    assert settings.poll_interval(raw) == settings.DEFAULT_POLL_MS


def test_environment_interval_seeds_display_preferences():
    assert settings.POLL_MS in settings.POLL_MS_OPTIONS
    assert DisplayPreferences().poll_ms == settings.POLL_MS
