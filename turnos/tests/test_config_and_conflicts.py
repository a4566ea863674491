"""
Tests for configuration loading and slot conflict detection.
"""

import asyncio

import pytest

from ..config import TurnosConfig
from ..conflicts import SlotLocks, blocks, find_active_conflict, slot_key
from ..models import Appointment


class TestConfig:
    """Test environment loading and validation"""

    def test_from_env_defaults(self, monkeypatch):
        for name in ("TURNOS_STORAGE_BACKEND", "TURNOS_SESSION_MINUTES", "TURNOS_TIMEZONE", "CALENDAR_ID"):
            monkeypatch.delenv(name, raising=False)

        config = TurnosConfig.from_env()

        assert config.storage_backend == "sheets"
        assert config.session_minutes == 50
        assert config.timezone == "America/Argentina/Buenos_Aires"
        assert config.calendar_id == "primary"

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TURNOS_STORAGE_BACKEND", "REDIS")
        monkeypatch.setenv("TURNOS_REDIS_HOST", "redis")
        monkeypatch.setenv("TURNOS_REDIS_PORT", "6380")
        monkeypatch.setenv("TURNOS_SEARCH_LIMIT", "5")
        monkeypatch.setenv("ALLOWED_TO", "5491199999999")
        monkeypatch.setenv("TURNOS_CALENDAR_ENABLED", "false")

        config = TurnosConfig.from_env()

        assert config.storage_backend == "redis"
        assert config.redis_url == "redis://redis:6380/0"
        assert config.search_limit == 5
        assert config.allowed_to == "5491199999999"
        assert not config.calendar_configured

    def test_invalid_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("TURNOS_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("TURNOS_SESSION_MINUTES", "cincuenta")
        assert TurnosConfig.from_env().session_minutes == 50

    @pytest.mark.parametrize("overrides", [
        {"session_minutes": 0},
        {"search_limit": 0},
        {"http_timeout": 0},
        {"sheet_header_rows": -1},
        {"storage_backend": "postgres"},
        {"storage_backend": "redis", "redis_url": "localhost:6379"},
    ])
    def test_validation(self, overrides):
        with pytest.raises(ValueError):
            TurnosConfig(**{"storage_backend": "memory", **overrides})


def record(position, appointment_id, patient="Sol", date="2026-02-25", time="16:00", status="ACTIVO"):
    return position, Appointment(id=appointment_id, patient=patient, date=date, time=time, status=status)


class TestConflicts:
    """Test slot matching rules"""

    def test_match_is_folded(self):
        records = [record(0, "a1", patient="José")]
        assert find_active_conflict(records, " jose ", "2026-02-25", "16:00")[1].id == "a1"

    def test_cancelled_records_do_not_conflict(self):
        records = [record(0, "a1", status="CANCELADO"), record(1, "a2")]
        assert find_active_conflict(records, "Sol", "2026-02-25", "16:00")[0] == 1

    def test_other_slot_is_free(self):
        records = [record(0, "a1")]
        assert find_active_conflict(records, "Sol", "2026-02-25", "17:00") is None
        assert find_active_conflict(records, "Luna", "2026-02-25", "16:00") is None

    def test_blocks(self):
        conflict = record(0, "a1")
        assert not blocks(None)
        assert blocks(conflict)
        assert blocks(conflict, "a2")
        assert not blocks(conflict, "a1")

    def test_slot_key(self):
        assert slot_key("María", "2026-02-25", "16:00") == ("MARIA", "2026-02-25", "16:00")

    @pytest.mark.asyncio
    async def test_slot_locks_serialize_and_clean_up(self):
        locks = SlotLocks()
        key = slot_key("Sol", "2026-02-25", "16:00")
        order = []

        async def worker(name):
            async with locks.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0
