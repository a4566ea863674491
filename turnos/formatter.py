"""
Reply formatting for the turnos appointment assistant

format_result() maps an EngineResult to the reply text sent back to the
user. It only reads the result and never decides anything.
"""

from typing import List, Optional

from .models import Appointment, CalendarResult, EngineResult, ResultKind

HELP_TEXT = (
    "Comandos disponibles:\n"
    "AGENDAR|Nombre|YYYY-MM-DD|HH:MM|PARTICULAR/OS\n"
    "LISTAR|YYYY-MM-DD\n"
    "BUSCAR|Nombre\n"
    "ESTADO|ID\n"
    "CANCELAR|ID\n"
    "REPROGRAMAR|ID|YYYY-MM-DD|HH:MM\n"
    "PAGADO|ID|detalle (opcional)\n"
    "NOTA|ID|texto\n"
    "AYUDA\n"
    "\n"
    "También en texto libre, por ejemplo: Agendá Sol 25/2 16:00 particular"
)

FAILURE_TEXT = "⚠️ No se pudo acceder a la agenda en este momento. Probá de nuevo en unos minutos."

FIELD_LABELS = {
    "patient": "nombre del paciente",
    "date": "fecha",
    "time": "hora",
    "type": "tipo",
    "id": "id del turno",
    "note": "texto de la nota",
}


def _line(appointment: Appointment) -> str:
    return f"{appointment.time} {appointment.patient} ({appointment.type}, {appointment.payment}) [{appointment.id}]"


def _detail(appointment: Appointment) -> List[str]:
    lines = [
        appointment.patient,
        f"{appointment.date} {appointment.time}",
        f"Tipo: {appointment.type}",
        f"Pago: {appointment.payment}",
        f"Estado: {appointment.status}",
    ]
    if appointment.note:
        lines.append(f"Nota: {appointment.note}")
    lines.append(f"ID: {appointment.id}")
    return lines


def _calendar_warning(calendar: Optional[CalendarResult]) -> List[str]:
    if calendar is not None and calendar.failed:
        return ["⚠️ No se pudo actualizar el calendario"]
    return []


def format_result(result: EngineResult) -> str:
    """
    Render an engine result as reply text.

    Args:
        result: Outcome of an engine operation

    Returns:
        Reply text; identical results always render identically
    """
    kind = result.kind
    appointment = result.appointment

    if kind is ResultKind.SCHEDULED:
        lines = ["✅ Agendado"] + _detail(appointment)
        calendar = result.calendar
        if calendar is not None and calendar.ok and calendar.link:
            lines.append(f"📅 {calendar.link}")
        elif calendar is not None and calendar.failed:
            lines.append("⚠️ No se pudo crear el evento en el calendario")
        return "\n".join(lines)

    if kind is ResultKind.LISTED:
        if not result.active and not result.inactive:
            return f"📅 No hay turnos el {result.query}"
        lines = [f"📅 Turnos del {result.query}"]
        lines += [_line(a) for a in result.active] or ["(sin turnos activos)"]
        if result.inactive:
            lines.append("Cancelados:")
            lines += [_line(a) for a in result.inactive]
        return "\n".join(lines)

    if kind is ResultKind.SEARCHED:
        if not result.total:
            return f"🔎 No hay turnos para \"{result.query}\""
        lines = [f"🔎 {result.total} turno(s) para \"{result.query}\""]
        lines += [f"{a.date} {_line(a)} {a.status}" for a in result.matches]
        if result.total > len(result.matches):
            lines.append(f"... y {result.total - len(result.matches)} más")
        return "\n".join(lines)

    if kind is ResultKind.STATUS:
        return "\n".join(["📋 Turno"] + _detail(appointment))

    if kind is ResultKind.CANCELLED:
        lines = ["❌ Cancelado", appointment.patient, f"{appointment.date} {appointment.time}"]
        return "\n".join(lines + _calendar_warning(result.calendar))

    if kind is ResultKind.RESCHEDULED:
        previous = result.previous
        lines = ["🔁 Reprogramado", appointment.patient]
        if previous is not None:
            lines.append(f"Antes: {previous.date} {previous.time}")
        lines.append(f"Ahora: {appointment.date} {appointment.time}")
        return "\n".join(lines + _calendar_warning(result.calendar))

    if kind is ResultKind.PAYMENT_RECORDED:
        lines = ["💰 Pago registrado", appointment.patient, f"Pago: {appointment.payment}"]
        return "\n".join(lines + _calendar_warning(result.calendar))

    if kind is ResultKind.NOTE_SAVED:
        lines = ["📝 Nota guardada", appointment.patient, f"Nota: {appointment.note}"]
        return "\n".join(lines + _calendar_warning(result.calendar))

    if kind is ResultKind.INVALID_INPUT:
        label = FIELD_LABELS.get(result.invalid_field, result.invalid_field or "dato")
        text = f"⚠️ Dato inválido: {label}"
        if result.message:
            text += f" ({result.message})"
        return f"{text}\nEscribí AYUDA para ver los formatos."

    if kind is ResultKind.NOT_FOUND:
        return f"⚠️ No encontré el turno {result.query}"

    if kind is ResultKind.CONFLICT:
        lines = ["⚠️ Ya existe un turno activo en ese horario"]
        if appointment is not None:
            lines.append(f"{appointment.patient} {appointment.date} {appointment.time}")
        lines.append(f"ID: {result.conflict_id}")
        return "\n".join(lines)

    if kind is ResultKind.INVALID_TRANSITION:
        return f"⚠️ El turno {appointment.id} no está activo (estado: {appointment.status})"

    if kind is ResultKind.FAILURE:
        return FAILURE_TEXT

    return HELP_TEXT
