"""
Turnos - WhatsApp appointment assistant for a psychotherapy practice

Turns short text messages into appointment operations against a positional
row store, keeping a Google Calendar in sync.

Key Features:
- Strict '|' grammar (AGENDAR|Sol|2026-02-25|16:00|PARTICULAR)
- Free-text grammar with keyword prefixes ("Agendá Sol 25/2 16:00 particular")
- ACTIVO/CANCELADO lifecycle with per-slot duplicate detection
- Payment and note tracking mirrored into the calendar event description
- Google Sheets, Redis or in-memory appointment store
- Best-effort Google Calendar sync (failures never undo a store write)

Architecture:
- FastAPI web framework for the webhook and command endpoints
- Command parser + appointment engine for business logic
- Repository and calendar adapters injected into the engine
- Pydantic models for API contracts
"""

from .config import TurnosConfig
from .engine import AppointmentEngine
from .formatter import HELP_TEXT, format_result
from .models import Appointment, Command, EngineResult, ParsedIntent, ResultKind
from .parser import parse_command

__version__ = "1.0.0"

__all__ = [
    "Appointment",
    "AppointmentEngine",
    "Command",
    "EngineResult",
    "HELP_TEXT",
    "ParsedIntent",
    "ResultKind",
    "TurnosConfig",
    "format_result",
    "parse_command",
]
