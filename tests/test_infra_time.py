"""Tests for time utilities."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from fincas.infra.time import local_now, local_timezone, utc_now


class TestUtcNow:
    def test_returns_utc_datetime(self):
        assert utc_now().tzinfo == timezone.utc

    def test_returns_current_time(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)
        assert before <= now <= after


class TestLocalTimezone:
    def test_defaults_to_bogota(self, monkeypatch):
        monkeypatch.delenv("LOCAL_TIMEZONE", raising=False)
        assert local_timezone() == ZoneInfo("America/Bogota")

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LOCAL_TIMEZONE", "Europe/Madrid")
        assert local_timezone() == ZoneInfo("Europe/Madrid")
        assert local_now().tzinfo == ZoneInfo("Europe/Madrid")
