"""
Test configuration and fixtures for the turnos tests.

Provides an in-memory store, a scriptable fake calendar and a FastAPI test
client with the module-level service globals patched.
"""

import asyncio
import itertools
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from turnos.app import app
from turnos.calendar_sync import CalendarAdapter
from turnos.config import TurnosConfig
from turnos.engine import AppointmentEngine
from turnos.messaging import WhatsAppSender
from turnos.models import CalendarResult
from turnos.repository import InMemoryAppointmentRepository

TODAY = date(2026, 1, 10)
NOW = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


class FakeCalendarAdapter(CalendarAdapter):
    """Records every call; `fail=True` makes every call return a failure"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []
        self._ids = itertools.count(1)

    async def _result(self, event_id=None):
        # Yield once so concurrent operations can interleave
        await asyncio.sleep(0)
        if self.fail:
            return CalendarResult.failure("calendar unavailable")
        return CalendarResult.success(event_id, f"https://calendar.test/event/{event_id}")

    async def create(self, summary, description, start, end, timezone):
        self.calls.append(("create", summary, description, start, end, timezone))
        return await self._result(f"evt-{next(self._ids)}")

    async def patch_time(self, event_id, start, end, timezone):
        self.calls.append(("patch_time", event_id, start, end, timezone))
        return await self._result(event_id)

    async def patch_description(self, event_id, summary, description):
        self.calls.append(("patch_description", event_id, summary, description))
        return await self._result(event_id)

    async def delete(self, event_id):
        self.calls.append(("delete", event_id))
        return await self._result(event_id)

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def test_config():
    """Test configuration fixture"""
    return TurnosConfig(
        verify_token="verify-me",
        whatsapp_token="test-token",
        phone_id="123456",
        storage_backend="memory",
        calendar_enabled=False,
        search_limit=3,
        log_operations=False,
    )


@pytest.fixture
def memory_repository():
    return InMemoryAppointmentRepository()


@pytest.fixture
def fake_calendar():
    return FakeCalendarAdapter()


@pytest.fixture
def failing_calendar():
    return FakeCalendarAdapter(fail=True)


def make_engine(config, repository, calendar):
    ids = (f"turno-{n}" for n in itertools.count(1))
    return AppointmentEngine(
        config,
        repository,
        calendar,
        clock=lambda: NOW,
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def engine(test_config, memory_repository, fake_calendar):
    """Engine over the in-memory store and the fake calendar"""
    return make_engine(test_config, memory_repository, fake_calendar)


@pytest.fixture
def mock_sender():
    """Real recipient resolution, mocked delivery"""
    sender = WhatsAppSender("test-token", "123456", client=MagicMock())
    sender.send = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def client(test_config, memory_repository, fake_calendar, engine, mock_sender):
    """FastAPI test client with mocked dependencies"""
    with patch('turnos.app.config', test_config), \
         patch('turnos.app.repository', memory_repository), \
         patch('turnos.app.calendar_adapter', fake_calendar), \
         patch('turnos.app.engine', engine), \
         patch('turnos.app.whatsapp_sender', mock_sender):
        yield TestClient(app)
