"""
Data models for the turnos appointment assistant

Contains enums, constants, dataclasses for appointments, parsed intents and
engine results, plus the Pydantic models used by the HTTP API.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class AppointmentStatus(Enum):
    """Lifecycle states of an appointment (CANCELADO is terminal)"""
    ACTIVO = "ACTIVO"
    CANCELADO = "CANCELADO"


class AppointmentType(Enum):
    """Billing type of the appointment"""
    PARTICULAR = "PARTICULAR"
    OS = "OS"


class Command(Enum):
    """Commands understood by the parser (values are the strict keywords)"""
    SCHEDULE = "AGENDAR"
    LIST = "LISTAR"
    SEARCH = "BUSCAR"
    CANCEL = "CANCELAR"
    RESCHEDULE = "REPROGRAMAR"
    PAY = "PAGADO"
    NOTE = "NOTA"
    STATUS = "ESTADO"
    HELP = "AYUDA"
    UNRECOGNIZED = "DESCONOCIDO"


class ResultKind(Enum):
    """Outcome of an engine operation"""
    SCHEDULED = "scheduled"
    LISTED = "listed"
    SEARCHED = "searched"
    STATUS = "status"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    PAYMENT_RECORDED = "payment_recorded"
    NOTE_SAVED = "note_saved"
    HELP = "help"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    FAILURE = "failure"


# ============================================================================
# Constants
# ============================================================================

PAYMENT_PENDING = "PENDIENTE"
PAYMENT_PAID = "PAGADO"

# Row layout of the backing store
ROW_FIELDS = (
    "id", "patient", "date", "time", "type",
    "payment", "status", "calendar_ref", "note", "created_at",
)

# Field separator of the strict grammar
FIELD_SEPARATOR = "|"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class Appointment:
    """One appointment record as persisted in the store"""
    id: str
    patient: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    type: str = AppointmentType.PARTICULAR.value
    payment: str = PAYMENT_PENDING
    status: str = AppointmentStatus.ACTIVO.value
    calendar_ref: Optional[str] = None
    note: str = ""
    created_at: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.ACTIVO.value

    def with_changes(self, **changes: Any) -> "Appointment":
        """Copy with some mutable fields replaced (id and created_at are fixed)"""
        if "id" in changes or "created_at" in changes:
            raise ValueError("id and created_at are immutable")
        return replace(self, **changes)

    def to_row(self) -> List[str]:
        """Serialize to the 10-field row order of the store"""
        return [
            self.id,
            self.patient,
            self.date,
            self.time,
            self.type,
            self.payment,
            self.status,
            self.calendar_ref or "",
            self.note or "",
            self.created_at,
        ]

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Appointment":
        """Deserialize a store row; short rows (trailing empty cells) are padded"""
        cells = [("" if cell is None else str(cell)) for cell in row][:len(ROW_FIELDS)]
        cells += [""] * (len(ROW_FIELDS) - len(cells))
        values = dict(zip(ROW_FIELDS, cells))
        values["calendar_ref"] = values["calendar_ref"] or None
        values["type"] = values["type"] or AppointmentType.PARTICULAR.value
        values["payment"] = values["payment"] or PAYMENT_PENDING
        values["status"] = values["status"] or AppointmentStatus.ACTIVO.value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return dict(zip(ROW_FIELDS, self.to_row()))


@dataclass
class ParsedIntent:
    """Structured intent produced by either parser grammar"""
    command: Command
    fields: Dict[str, Optional[str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def recognized(self) -> bool:
        return self.command is not Command.UNRECOGNIZED


@dataclass(frozen=True)
class CalendarResult:
    """Outcome of a best-effort calendar call; failures are values, not exceptions"""
    ok: bool
    event_id: Optional[str] = None
    link: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, event_id: Optional[str] = None, link: Optional[str] = None) -> "CalendarResult":
        return cls(ok=True, event_id=event_id, link=link)

    @classmethod
    def failure(cls, error: str) -> "CalendarResult":
        return cls(ok=False, error=error)

    @classmethod
    def skipped(cls) -> "CalendarResult":
        return cls(ok=False, error="skipped")

    @property
    def failed(self) -> bool:
        """True when a call was attempted and failed (a skipped call is not a failure)"""
        return not self.ok and self.error != "skipped"


@dataclass
class EngineResult:
    """
    Result of an engine operation.

    Only the attributes relevant to `kind` are populated: `appointment` for
    single-record outcomes, `previous` for the record before a reschedule,
    `active`/`inactive` for listings, `matches` and `total` for searches,
    `conflict_id` for conflicts, `invalid_field` for invalid input.
    """
    kind: ResultKind
    appointment: Optional[Appointment] = None
    previous: Optional[Appointment] = None
    active: List[Appointment] = field(default_factory=list)
    inactive: List[Appointment] = field(default_factory=list)
    matches: List[Appointment] = field(default_factory=list)
    total: int = 0
    conflict_id: Optional[str] = None
    invalid_field: Optional[str] = None
    query: Optional[str] = None
    calendar: Optional[CalendarResult] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.kind not in (
            ResultKind.INVALID_INPUT,
            ResultKind.NOT_FOUND,
            ResultKind.CONFLICT,
            ResultKind.INVALID_TRANSITION,
            ResultKind.FAILURE,
        )


# ============================================================================
# Pydantic Models for API
# ============================================================================

class CommandRequest(BaseModel):
    """Request model for the direct command endpoint"""
    text: str = Field(..., min_length=1, description="Raw command text (strict or free text)")


class CommandResponse(BaseModel):
    """Response model for the direct command endpoint"""
    reply: str = Field(..., description="Reply text that would be sent to the user")
    command: str = Field(..., description="Parsed command keyword")
    kind: str = Field(..., description="Engine result kind")
    success: bool = Field(..., description="Whether the operation succeeded")


class WebhookAck(BaseModel):
    """Acknowledgement returned to the messaging platform"""
    status: str = Field(..., description="received/ignored")


class HealthResponse(BaseModel):
    """Response model for health check"""
    status: str = Field(..., description="Service status: healthy/degraded/unhealthy")
    store_reachable: bool = Field(..., description="Appointment store connectivity")
    calendar_enabled: bool = Field(..., description="Whether calendar sync is configured")
    config_valid: bool = Field(..., description="Configuration validation status")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
