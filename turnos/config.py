"""
Configuration for the turnos appointment assistant

All settings come from environment variables; defaults target a single
psychotherapy practice calendar in Buenos Aires.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("sheets", "redis", "memory")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


@dataclass
class TurnosConfig:
    """
    Configuration for the appointment assistant.

    Attributes:
        verify_token: Token expected in the webhook subscription handshake
        whatsapp_token: Graph API bearer token for outbound replies
        phone_id: Graph API sender phone id
        allowed_to: Fixed recipient that overrides the message sender (optional)
        storage_backend: 'sheets', 'redis' or 'memory'
        sheet_id: Spreadsheet id for the sheets backend
        sheet_range: Sheet tab holding the appointment rows
        sheet_header_rows: Rows above the first appointment row
        redis_url: Redis URL for the redis backend
        calendar_enabled: Sync appointments to Google Calendar
        calendar_id: Target calendar id
        google_service_account_json: Service-account credentials (raw JSON)
        timezone: IANA timezone for calendar events
        session_minutes: Length of every appointment (default: 50)
        event_label: Suffix of the calendar event summary
        search_limit: Max matches shown by BUSCAR (match count is unaffected)
        http_timeout: Timeout in seconds for Google and Graph API calls
        serialize_slots: Serialize schedule/reschedule per slot inside the process
        log_operations: Log every engine mutation (default: True)
    """

    verify_token: str = ""
    whatsapp_token: Optional[str] = None
    phone_id: Optional[str] = None
    allowed_to: Optional[str] = None
    storage_backend: str = "sheets"
    sheet_id: Optional[str] = None
    sheet_range: str = "TURNOS"
    sheet_header_rows: int = 1
    redis_url: str = "redis://localhost:6379/0"
    calendar_enabled: bool = True
    calendar_id: str = "primary"
    google_service_account_json: Optional[str] = None
    timezone: str = "America/Argentina/Buenos_Aires"
    session_minutes: int = 50
    event_label: str = "Psicoterapia"
    search_limit: int = 10
    http_timeout: float = 15.0
    serialize_slots: bool = True
    log_operations: bool = True

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.session_minutes <= 0:
            raise ValueError(
                f"session_minutes must be positive, got {self.session_minutes}"
            )

        if self.search_limit < 1:
            raise ValueError(
                f"search_limit must be at least 1, got {self.search_limit}"
            )

        if self.http_timeout <= 0:
            raise ValueError(
                f"http_timeout must be positive, got {self.http_timeout}"
            )

        if self.sheet_header_rows < 0:
            raise ValueError(
                f"sheet_header_rows cannot be negative, got {self.sheet_header_rows}"
            )

        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {STORAGE_BACKENDS}, got {self.storage_backend}"
            )

        if self.storage_backend == "redis" and not self.redis_url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(
                f"redis_url must start with redis://, rediss://, or unix://, got {self.redis_url}"
            )

        if self.storage_backend == "sheets" and not self.sheet_id:
            logger.warning("SHEET_ID not set but storage_backend=sheets. Store reads will fail.")

        if self.calendar_enabled and not self.google_service_account_json:
            logger.warning(
                "GOOGLE_SERVICE_ACCOUNT_JSON not set but calendar sync is enabled. "
                "Calendar sync will be disabled."
            )

        if not self.whatsapp_token or not self.phone_id:
            logger.warning("WHATSAPP_TOKEN/PHONE_ID not set. Replies will not be delivered.")

        if self.log_operations:
            logger.info(
                f" TurnosConfig loaded: backend={self.storage_backend}, "
                f"calendar_enabled={self.calendar_enabled}, timezone={self.timezone}, "
                f"session_minutes={self.session_minutes}, search_limit={self.search_limit}"
            )

    @property
    def calendar_configured(self) -> bool:
        return self.calendar_enabled and bool(self.google_service_account_json)

    @staticmethod
    def from_env() -> "TurnosConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            VERIFY_TOKEN, WHATSAPP_TOKEN, PHONE_ID, ALLOWED_TO: Messaging platform
            SHEET_ID: Spreadsheet id (sheets backend)
            TURNOS_SHEET_RANGE: Sheet tab (default: TURNOS)
            TURNOS_SHEET_HEADER_ROWS: Header rows above the data (default: 1)
            CALENDAR_ID: Calendar id (default: primary)
            GOOGLE_SERVICE_ACCOUNT_JSON: Service-account JSON
            TURNOS_STORAGE_BACKEND: sheets/redis/memory (default: sheets)
            TURNOS_REDIS_HOST / TURNOS_REDIS_PORT / TURNOS_REDIS_DB: Redis backend
            TURNOS_CALENDAR_ENABLED: Enable calendar sync (default: true)
            TURNOS_TIMEZONE: Event timezone (default: America/Argentina/Buenos_Aires)
            TURNOS_SESSION_MINUTES: Appointment length (default: 50)
            TURNOS_EVENT_LABEL: Event summary suffix (default: Psicoterapia)
            TURNOS_SEARCH_LIMIT: BUSCAR display cap (default: 10)
            TURNOS_HTTP_TIMEOUT: External call timeout in seconds (default: 15)
            TURNOS_SERIALIZE_SLOTS: Per-slot lock (default: true)
            TURNOS_LOG_OPERATIONS: Log engine mutations (default: true)

        Returns:
            TurnosConfig instance loaded from environment
        """
        redis_host = os.getenv("TURNOS_REDIS_HOST", "localhost")
        redis_port = _env_int("TURNOS_REDIS_PORT", 6379)
        redis_db = _env_int("TURNOS_REDIS_DB", 0)
        redis_url = f"redis://{redis_host}:{redis_port}/{redis_db}"

        return TurnosConfig(
            verify_token=os.getenv("VERIFY_TOKEN", ""),
            whatsapp_token=os.getenv("WHATSAPP_TOKEN"),
            phone_id=os.getenv("PHONE_ID"),
            allowed_to=os.getenv("ALLOWED_TO") or None,
            storage_backend=os.getenv("TURNOS_STORAGE_BACKEND", "sheets").lower(),
            sheet_id=os.getenv("SHEET_ID"),
            sheet_range=os.getenv("TURNOS_SHEET_RANGE", "TURNOS"),
            sheet_header_rows=_env_int("TURNOS_SHEET_HEADER_ROWS", 1),
            redis_url=redis_url,
            calendar_enabled=_env_flag("TURNOS_CALENDAR_ENABLED", "true"),
            calendar_id=os.getenv("CALENDAR_ID", "primary"),
            google_service_account_json=os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON"),
            timezone=os.getenv("TURNOS_TIMEZONE", "America/Argentina/Buenos_Aires"),
            session_minutes=_env_int("TURNOS_SESSION_MINUTES", 50),
            event_label=os.getenv("TURNOS_EVENT_LABEL", "Psicoterapia"),
            search_limit=_env_int("TURNOS_SEARCH_LIMIT", 10),
            http_timeout=_env_float("TURNOS_HTTP_TIMEOUT", 15.0),
            serialize_slots=_env_flag("TURNOS_SERIALIZE_SLOTS", "true"),
            log_operations=_env_flag("TURNOS_LOG_OPERATIONS", "true"),
        )
