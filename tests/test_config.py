import pytest
from pydantic import ValidationError

from leave_management.core.config import Config


def test_stats_refresh_mode_from_env(monkeypatch):
    monkeypatch.setenv("STATS_REFRESH_MODE", " Manual ")
    assert Config().stats_refresh_mode == "manual"

    monkeypatch.delenv("STATS_REFRESH_MODE")
    assert Config().stats_refresh_mode == "background"


def test_unknown_stats_refresh_mode_fails_at_startup(monkeypatch):
    monkeypatch.setenv("STATS_REFRESH_MODE", "backgroud")
    with pytest.raises(ValidationError) as exc_info:
        Config()
    assert "stats_refresh_mode" in str(exc_info.value)
