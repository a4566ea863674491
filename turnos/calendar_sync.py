"""
Calendar sync adapters for the turnos appointment assistant

Calendar calls are best-effort: every adapter method returns a
CalendarResult and never raises, so the engine can ignore a failed call
without rolling back the store mutation that caused it.

Event windows are computed on wall-clock minutes in the configured
timezone; the timezone name is sent alongside and Google resolves it.
"""

import asyncio
import datetime as dt
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from .config import TurnosConfig
from .google_clients import CALENDAR_SCOPE, build_google_service, load_service_account_credentials
from .models import CalendarResult
from .normalizer import MINUTES_PER_DAY, add_minutes

logger = logging.getLogger(__name__)


# ============================================================================
# Event content
# ============================================================================

def event_window(date: str, time: str, minutes: int) -> Tuple[str, str]:
    """
    Compute the [start, end) window of an appointment.

    Args:
        date: ISO date
        time: HH:MM start
        minutes: Session length

    Returns:
        (start, end) as 'YYYY-MM-DDTHH:MM:00'; the end date moves forward
        when the session runs past midnight
    """
    end_time = add_minutes(time, minutes)
    hour, minute = (int(part) for part in time.split(":"))
    days = (hour * 60 + minute + minutes) // MINUTES_PER_DAY
    end_date = (dt.date.fromisoformat(date) + dt.timedelta(days=days)).isoformat()
    return f"{date}T{time}:00", f"{end_date}T{end_time}:00"


def build_summary(patient: str, label: str) -> str:
    return f"{patient} – {label}"


def build_description(appointment_type: str, payment: str, note: Optional[str] = None) -> str:
    """Event description listing type and payment, plus the note when present"""
    description = f"Tipo: {appointment_type}\nPago: {payment}"
    if note:
        description += f"\nNota: {note}"
    return description


# ============================================================================
# Interface
# ============================================================================

class CalendarAdapter(ABC):
    """Create/patch/delete calendar events; failures are returned, not raised"""

    enabled: bool = True

    @abstractmethod
    async def create(self, summary: str, description: str, start: str, end: str, timezone: str) -> CalendarResult:
        ...

    @abstractmethod
    async def patch_time(self, event_id: str, start: str, end: str, timezone: str) -> CalendarResult:
        ...

    @abstractmethod
    async def patch_description(self, event_id: str, summary: str, description: str) -> CalendarResult:
        ...

    @abstractmethod
    async def delete(self, event_id: str) -> CalendarResult:
        ...


class NullCalendarAdapter(CalendarAdapter):
    """Adapter used when calendar sync is disabled; every call is skipped"""

    enabled = False

    async def create(self, summary, description, start, end, timezone):
        return CalendarResult.skipped()

    async def patch_time(self, event_id, start, end, timezone):
        return CalendarResult.skipped()

    async def patch_description(self, event_id, summary, description):
        return CalendarResult.skipped()

    async def delete(self, event_id):
        return CalendarResult.skipped()


# ============================================================================
# Google Calendar
# ============================================================================

class GoogleCalendarAdapter(CalendarAdapter):
    """
    Google Calendar v3 events API through a service account.

    The discovery client is blocking, so each request runs in a worker
    thread. The transport timeout comes from config.http_timeout.
    """

    def __init__(self, service: Any, calendar_id: str = "primary"):
        self.service = service
        self.calendar_id = calendar_id

    @classmethod
    def from_config(cls, config: TurnosConfig) -> "GoogleCalendarAdapter":
        credentials = load_service_account_credentials(
            config.google_service_account_json, [CALENDAR_SCOPE]
        )
        service = build_google_service("calendar", "v3", credentials, config.http_timeout)
        return cls(service, config.calendar_id)

    async def _run(self, request: Any, action: str) -> Tuple[Optional[dict], Optional[str]]:
        try:
            return await asyncio.to_thread(request.execute), None
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
            logger.warning(f"️ Calendar {action} failed: {e}")
            return None, str(e)

    async def create(self, summary, description, start, end, timezone):
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start, "timeZone": timezone},
            "end": {"dateTime": end, "timeZone": timezone},
        }
        request = self.service.events().insert(calendarId=self.calendar_id, body=body)
        event, error = await self._run(request, "create")
        if error is not None:
            return CalendarResult.failure(error)
        logger.info(f" Calendar event created: {event.get('id')}")
        return CalendarResult.success(event.get("id"), event.get("htmlLink"))

    async def patch_time(self, event_id, start, end, timezone):
        body = {
            "start": {"dateTime": start, "timeZone": timezone},
            "end": {"dateTime": end, "timeZone": timezone},
        }
        request = self.service.events().patch(calendarId=self.calendar_id, eventId=event_id, body=body)
        event, error = await self._run(request, "time patch")
        if error is not None:
            return CalendarResult.failure(error)
        return CalendarResult.success(event_id, event.get("htmlLink"))

    async def patch_description(self, event_id, summary, description):
        body = {"summary": summary, "description": description}
        request = self.service.events().patch(calendarId=self.calendar_id, eventId=event_id, body=body)
        event, error = await self._run(request, "description patch")
        if error is not None:
            return CalendarResult.failure(error)
        return CalendarResult.success(event_id, event.get("htmlLink"))

    async def delete(self, event_id):
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        _, error = await self._run(request, "delete")
        if error is not None:
            return CalendarResult.failure(error)
        logger.info(f" Calendar event deleted: {event_id}")
        return CalendarResult.success(event_id)


def build_calendar_adapter(config: TurnosConfig) -> CalendarAdapter:
    """Google adapter when credentials are configured, otherwise the null adapter"""
    if not config.calendar_configured:
        logger.info(" Calendar sync disabled")
        return NullCalendarAdapter()
    try:
        return GoogleCalendarAdapter.from_config(config)
    except ValueError as e:
        logger.warning(f"️ Calendar credentials unusable ({e}); calendar sync disabled")
        return NullCalendarAdapter()
