"""
Appointment store for the turnos appointment assistant

The store is a passive ordered sequence of 10-field rows addressed by
position. Backends only implement three row operations (read all, append,
update at position); lookups are derived here and carry no business logic.

Positions are 0-based indexes into the data rows. They are stable: rows are
never deleted or reordered, cancellation is a status change.

Backends:
    - SheetsAppointmentRepository: Google Sheets tab (production)
    - RedisAppointmentRepository: one Redis list of JSON rows
    - InMemoryAppointmentRepository: process-local list (tests, local runs)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import httplib2
import redis.asyncio as redis
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from redis.exceptions import RedisError

from .config import TurnosConfig
from .google_clients import SHEETS_SCOPE, build_google_service, load_service_account_credentials
from .models import Appointment, ROW_FIELDS
from .normalizer import fold_for_match

logger = logging.getLogger(__name__)

Row = List[str]
Record = Tuple[int, Appointment]

REDIS_KEY = "turnos:appointments"


class RepositoryError(Exception):
    """The backing store could not be read or written"""


# ============================================================================
# Interface
# ============================================================================

class AppointmentRepository(ABC):
    """Positional row store with derived appointment lookups"""

    @abstractmethod
    async def read_rows(self) -> List[Row]:
        """Return every data row in store order"""

    @abstractmethod
    async def append_row(self, row: Row) -> None:
        """Append one row at the end of the store"""

    @abstractmethod
    async def update_row(self, position: int, row: Row) -> None:
        """Overwrite the row at a 0-based data position"""

    async def ping(self) -> bool:
        """Check that the store is reachable"""
        try:
            await self.read_rows()
            return True
        except RepositoryError:
            return False

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Appointment-level operations
    # ------------------------------------------------------------------

    async def read_all(self) -> List[Record]:
        """All appointments with their positions; rows without an id are skipped"""
        rows = await self.read_rows()
        return [
            (position, Appointment.from_row(row))
            for position, row in enumerate(rows)
            if row and str(row[0]).strip()
        ]

    async def append(self, appointment: Appointment) -> None:
        await self.append_row(appointment.to_row())

    async def update_at(self, position: int, appointment: Appointment) -> None:
        await self.update_row(position, appointment.to_row())

    async def find_by_id(self, appointment_id: str) -> Optional[Record]:
        wanted = (appointment_id or "").strip()
        if not wanted:
            return None
        for position, appointment in await self.read_all():
            if appointment.id == wanted:
                return position, appointment
        return None

    async def find_by_patient(self, fragment: str) -> List[Record]:
        """Records whose folded patient name contains the folded fragment"""
        needle = fold_for_match(fragment)
        return [
            (position, appointment)
            for position, appointment in await self.read_all()
            if needle in fold_for_match(appointment.patient)
        ]

    async def find_by_slot(self, patient: str, date: str, time: str) -> List[Record]:
        """Records of any status on the given slot"""
        wanted = fold_for_match(patient)
        return [
            (position, appointment)
            for position, appointment in await self.read_all()
            if appointment.date == date
            and appointment.time == time
            and fold_for_match(appointment.patient) == wanted
        ]


# ============================================================================
# In-memory backend
# ============================================================================

class InMemoryAppointmentRepository(AppointmentRepository):
    """Process-local list of rows"""

    def __init__(self, rows: Optional[Sequence[Sequence[Any]]] = None):
        self.rows: List[Row] = [list(row) for row in (rows or [])]

    async def read_rows(self) -> List[Row]:
        return [list(row) for row in self.rows]

    async def append_row(self, row: Row) -> None:
        self.rows.append(list(row))

    async def update_row(self, position: int, row: Row) -> None:
        if not 0 <= position < len(self.rows):
            raise RepositoryError(f"No row at position {position}")
        self.rows[position] = list(row)


# ============================================================================
# Redis backend
# ============================================================================

class RedisAppointmentRepository(AppointmentRepository):
    """
    Rows stored as JSON arrays in one Redis list.

    RPUSH / LRANGE / LSET map directly onto append / read / update-at, and
    list indexes are the row positions.
    """

    def __init__(self, client: redis.Redis, key: str = REDIS_KEY):
        self.client = client
        self.key = key

    async def read_rows(self) -> List[Row]:
        try:
            raw_rows = await self.client.lrange(self.key, 0, -1)
        except RedisError as e:
            raise RepositoryError(f"Redis read failed: {e}") from e
        try:
            return [json.loads(raw) for raw in raw_rows]
        except json.JSONDecodeError as e:
            raise RepositoryError(f"Corrupt row in {self.key}: {e}") from e

    async def append_row(self, row: Row) -> None:
        try:
            await self.client.rpush(self.key, json.dumps(row, ensure_ascii=False))
        except RedisError as e:
            raise RepositoryError(f"Redis append failed: {e}") from e

    async def update_row(self, position: int, row: Row) -> None:
        try:
            await self.client.lset(self.key, position, json.dumps(row, ensure_ascii=False))
        except RedisError as e:
            raise RepositoryError(f"Redis update failed at {position}: {e}") from e

    async def ping(self) -> bool:
        try:
            await asyncio.wait_for(self.client.ping(), timeout=1.0)
            return True
        except (RedisError, asyncio.TimeoutError, OSError):
            return False

    async def close(self) -> None:
        await self.client.close()


# ============================================================================
# Google Sheets backend
# ============================================================================

class SheetsAppointmentRepository(AppointmentRepository):
    """
    Rows stored in one tab of a Google spreadsheet.

    Columns A..J hold the row fields. The first `header_rows` rows are
    skipped, so data position p lives on sheet row p + header_rows + 1.
    Values are written RAW so dates, times and leading "=" stay literal text
    and read back exactly as written.
    The discovery client is blocking and runs in a worker thread.
    """

    LAST_COLUMN = "J"

    def __init__(self, service: Any, sheet_id: str, tab: str = "TURNOS", header_rows: int = 1):
        self.service = service
        self.sheet_id = sheet_id
        self.tab = tab
        self.header_rows = header_rows

    @classmethod
    def from_config(cls, config: TurnosConfig) -> "SheetsAppointmentRepository":
        credentials = load_service_account_credentials(
            config.google_service_account_json, [SHEETS_SCOPE]
        )
        service = build_google_service("sheets", "v4", credentials, config.http_timeout)
        return cls(service, config.sheet_id, config.sheet_range, config.sheet_header_rows)

    def _sheet_row(self, position: int) -> int:
        return position + self.header_rows + 1

    async def _execute(self, request: Any, action: str) -> Any:
        try:
            return await asyncio.to_thread(request.execute)
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
            raise RepositoryError(f"Sheets {action} failed: {e}") from e

    async def read_rows(self) -> List[Row]:
        request = self.service.spreadsheets().values().get(
            spreadsheetId=self.sheet_id,
            range=f"{self.tab}!A:{self.LAST_COLUMN}",
        )
        response = await self._execute(request, "read")
        rows = response.get("values", [])[self.header_rows:]
        # Sheets drops trailing empty cells
        return [list(row) + [""] * (len(ROW_FIELDS) - len(row)) for row in rows]

    async def append_row(self, row: Row) -> None:
        request = self.service.spreadsheets().values().append(
            spreadsheetId=self.sheet_id,
            range=f"{self.tab}!A:Z",
            valueInputOption="RAW",
            body={"values": [row]},
        )
        await self._execute(request, "append")

    async def update_row(self, position: int, row: Row) -> None:
        sheet_row = self._sheet_row(position)
        request = self.service.spreadsheets().values().update(
            spreadsheetId=self.sheet_id,
            range=f"{self.tab}!A{sheet_row}:{self.LAST_COLUMN}{sheet_row}",
            valueInputOption="RAW",
            body={"values": [row]},
        )
        await self._execute(request, "update")


# ============================================================================
# Factory
# ============================================================================

def build_repository(config: TurnosConfig, redis_client: Optional[redis.Redis] = None) -> AppointmentRepository:
    """
    Construct the backend selected by config.storage_backend.

    Args:
        config: Loaded configuration
        redis_client: Client for the redis backend (created from redis_url if omitted)

    Returns:
        AppointmentRepository instance
    """
    backend = config.storage_backend
    if backend == "memory":
        logger.warning("️ Using in-memory appointment store; data is lost on restart")
        return InMemoryAppointmentRepository()
    if backend == "redis":
        client = redis_client or redis.Redis.from_url(config.redis_url, decode_responses=True)
        return RedisAppointmentRepository(client)
    return SheetsAppointmentRepository.from_config(config)
