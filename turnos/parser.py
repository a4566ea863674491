"""
Command parser for the turnos appointment assistant

Two front-ends produce the same ParsedIntent value:

1. Strict grammar: fields separated by '|', first field is the command
   keyword, the rest are positional (AGENDAR|Sol|2026-02-25|16:00|PARTICULAR).
2. Free-text grammar: the folded text starts with an accepted keyword
   prefix and the arguments are recovered with token heuristics
   ("Agendá Sol 25/2 16:00 particular").

The strict grammar wins whenever the separator is present. Neither grammar
validates required fields; missing values are passed through as empty and
rejected downstream by the engine. Parsing never raises: the result is
either a structured intent or Command.UNRECOGNIZED.
"""

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .models import AppointmentType, Command, FIELD_SEPARATOR, ParsedIntent
from .normalizer import fold_for_match, normalize_text, parse_flexible_date, parse_flexible_time

logger = logging.getLogger(__name__)


# ============================================================================
# Patterns
# ============================================================================

def load_command_patterns() -> Dict[str, Any]:
    """
    Load keyword tables for both grammars.

    Pattern Categories:
        - keywords: accepted folded prefixes per command, checked in order
        - strict_fields: positional field names per command
        - type_markers: regex sources that flag an obra-social appointment

    Returns:
        Dictionary with pattern categories
    """
    return {
        # Order matters: the first command whose prefix matches wins
        "keywords": [
            (Command.SCHEDULE, ("AGENDAR", "AGENDA")),
            (Command.LIST, ("LISTAR", "LISTA")),
            (Command.SEARCH, ("BUSCAR", "BUSCA")),
            (Command.CANCEL, ("CANCELAR", "CANCELA")),
            (Command.RESCHEDULE, ("REPROGRAMAR", "REPROGRAMA")),
            (Command.PAY, ("PAGADO", "PAGO")),
            (Command.NOTE, ("NOTA",)),
            (Command.STATUS, ("ESTADO",)),
            (Command.HELP, ("AYUDA",)),
        ],
        "strict_fields": {
            Command.SCHEDULE: ("patient", "date", "time", "type"),
            Command.LIST: ("date",),
            Command.SEARCH: ("patient",),
            Command.CANCEL: ("id",),
            Command.RESCHEDULE: ("id", "date", "time"),
            Command.PAY: ("id", "detail"),
            Command.NOTE: ("id", "note"),
            Command.STATUS: ("id",),
            Command.HELP: (),
        },
        "type_markers": [
            r"\bOBRA\s*SOCIAL\b",
            r"\bO\.?\s?S\.?(?![A-Z0-9])",
            r"\bPREPAGA\b",
        ],
    }


def compile_patterns(patterns: Dict[str, Any]) -> Dict[str, Any]:
    """Compile the regex sources of load_command_patterns()"""
    compiled = dict(patterns)
    compiled["type_markers"] = [re.compile(source) for source in patterns["type_markers"]]
    return compiled


PATTERNS = compile_patterns(load_command_patterns())

STRICT_KEYWORDS = {
    prefix: command
    for command, prefixes in PATTERNS["keywords"]
    for prefix in prefixes
}

# Punctuation allowed to trail a keyword ("Agendá:", "nota,")
KEYWORD_TRAILING = ":,.;!¡¿?"


# ============================================================================
# Shared helpers
# ============================================================================

def resolve_appointment_type(text: Optional[str]) -> str:
    """
    Resolve the appointment type from any text fragment.

    An obra-social marker (OS, O.S., obra social, prepaga) yields OS; anything
    else, including an explicit 'particular', yields PARTICULAR.
    """
    folded = fold_for_match(text)
    if any(marker.search(folded) for marker in PATTERNS["type_markers"]):
        return AppointmentType.OS.value
    return AppointmentType.PARTICULAR.value


def match_keyword(folded_text: str) -> Optional[Command]:
    """Return the first command whose accepted prefix starts the folded text"""
    for command, prefixes in PATTERNS["keywords"]:
        if any(folded_text.startswith(prefix) for prefix in prefixes):
            return command
    return None


def _looks_like_schedule_keyword(token: str) -> bool:
    """True for truncated or inflected forms of the schedule keyword (AGEND, AGENDÁ...)"""
    folded = fold_for_match(token).strip(KEYWORD_TRAILING)
    if len(folded) < 4:
        return False
    return any(
        prefix.startswith(folded) or folded.startswith(prefix)
        for prefix in dict(PATTERNS["keywords"])[Command.SCHEDULE]
    )


def _split_first(remainder: str) -> Tuple[str, str]:
    """Split at the first whitespace run; the tail is empty when there is none"""
    parts = remainder.split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1].strip()


# ============================================================================
# Strict grammar
# ============================================================================

def parse_strict(text: str, today: Optional[date] = None) -> ParsedIntent:
    """
    Parse the separator-delimited grammar.

    Args:
        text: Normalized text containing the field separator
        today: Reference date for dates without a year

    Returns:
        ParsedIntent (UNRECOGNIZED if the first field is not a keyword)
    """
    parts = [part.strip() for part in text.split(FIELD_SEPARATOR)]
    command = STRICT_KEYWORDS.get(fold_for_match(parts[0]).strip(KEYWORD_TRAILING))
    if command is None:
        return ParsedIntent(Command.UNRECOGNIZED, errors=[f"comando desconocido: {parts[0]}"])

    names = PATTERNS["strict_fields"][command]
    values = parts[1:] + [""] * (len(names) - len(parts[1:]))
    if command in (Command.NOTE, Command.PAY) and len(values) > len(names):
        # free-form tail may itself contain the separator
        values[len(names) - 1] = FIELD_SEPARATOR.join(values[len(names) - 1:])
    fields: Dict[str, Optional[str]] = dict(zip(names, values))
    errors: List[str] = []

    # Unparsable dates and times pass through raw
    if "date" in fields and fields["date"]:
        parsed = parse_flexible_date(fields["date"], today)
        if parsed is None:
            errors.append(f"fecha no reconocida: {fields['date']}")
        fields["date"] = parsed or fields["date"]
    if "time" in fields and fields["time"]:
        parsed = parse_flexible_time(fields["time"])
        if parsed is None:
            errors.append(f"hora no reconocida: {fields['time']}")
        fields["time"] = parsed or fields["time"]
    if command is Command.SCHEDULE:
        fields["type"] = resolve_appointment_type(fields["type"])

    return ParsedIntent(command, fields, errors)


# ============================================================================
# Free-text grammar
# ============================================================================

def _parse_free_schedule(tokens: List[str], today: Optional[date]) -> ParsedIntent:
    """
    Schedule heuristic: first date-like token, first time-like token, the
    patient is every token between the keyword and the earliest of the two.
    """
    date_index: Optional[int] = None
    time_index: Optional[int] = None
    date_value: Optional[str] = None
    time_value: Optional[str] = None

    for index, token in enumerate(tokens[1:], start=1):
        if date_index is None:
            parsed_date = parse_flexible_date(token, today)
            if parsed_date:
                date_index, date_value = index, parsed_date
                continue
        if time_index is None:
            parsed_time = parse_flexible_time(token)
            if parsed_time:
                time_index, time_value = index, parsed_time
        if date_index is not None and time_index is not None:
            break

    boundaries = [i for i in (date_index, time_index) if i is not None]
    name_end = min(boundaries) if boundaries else len(tokens)
    name_tokens = [t for t in tokens[1:name_end] if not _looks_like_schedule_keyword(t)]

    errors = []
    if date_value is None:
        errors.append("no se encontró una fecha")
    if time_value is None:
        errors.append("no se encontró una hora")

    fields = {
        "patient": " ".join(name_tokens),
        "date": date_value,
        "time": time_value,
        "type": resolve_appointment_type(" ".join(tokens)),
    }
    return ParsedIntent(Command.SCHEDULE, fields, errors)


def parse_free_text(text: str, today: Optional[date] = None) -> ParsedIntent:
    """
    Parse the free-text grammar.

    Args:
        text: Normalized text without the field separator
        today: Reference date for dates without a year

    Returns:
        ParsedIntent (UNRECOGNIZED if no keyword prefix matches)
    """
    command = match_keyword(fold_for_match(text))
    if command is None:
        return ParsedIntent(Command.UNRECOGNIZED)

    tokens = text.split()
    remainder = " ".join(tokens[1:])

    if command is Command.SCHEDULE:
        return _parse_free_schedule(tokens, today)

    if command is Command.RESCHEDULE:
        args = remainder.split()
        errors = [] if len(args) == 3 else [f"se esperaban 3 datos, llegaron {len(args)}"]
        args += [""] * (3 - len(args))
        appointment_id, date_token, time_token = args[:3]
        fields = {
            "id": appointment_id,
            "date": parse_flexible_date(date_token, today),
            "time": parse_flexible_time(time_token),
        }
        return ParsedIntent(command, fields, errors)

    if command is Command.PAY:
        appointment_id, detail = _split_first(remainder)
        return ParsedIntent(command, {"id": appointment_id, "detail": detail})

    if command is Command.NOTE:
        appointment_id, note = _split_first(remainder)
        return ParsedIntent(command, {"id": appointment_id, "note": note})

    if command is Command.LIST:
        return ParsedIntent(command, {"date": parse_flexible_date(remainder, today) or remainder})

    if command is Command.SEARCH:
        return ParsedIntent(command, {"patient": remainder})

    if command in (Command.CANCEL, Command.STATUS):
        return ParsedIntent(command, {"id": remainder})

    return ParsedIntent(command)


# ============================================================================
# Entry point
# ============================================================================

def parse_command(text: Optional[str], today: Optional[date] = None) -> ParsedIntent:
    """
    Turn raw message text into a structured intent.

    Args:
        text: Raw message text (None or empty yields UNRECOGNIZED)
        today: Reference date for dates without a year (defaults to date.today())

    Returns:
        ParsedIntent from the strict grammar when the separator is present,
        otherwise from the free-text grammar
    """
    normalized = normalize_text(text)
    if not normalized:
        return ParsedIntent(Command.UNRECOGNIZED)

    if FIELD_SEPARATOR in normalized:
        intent = parse_strict(normalized, today)
        grammar = "strict"
    else:
        intent = parse_free_text(normalized, today)
        grammar = "free"

    logger.debug(f" Parsed ({grammar}): '{normalized[:60]}' -> {intent.command.value}")
    return intent
