"""
Appointment engine for the turnos appointment assistant

Owns the appointment state machine (ACTIVO -> CANCELADO) and is the only
writer of the store. Every operation validates first and writes last, so a
rejected command never touches the store. Calendar calls are best-effort:
their result is reported back but never undoes a store mutation.

Expected outcomes (invalid input, not found, conflict, invalid transition)
come back as EngineResult values. RepositoryError propagates out of the
individual operations; execute() turns it into a FAILURE result.
"""

import logging
import uuid
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Callable, Optional

from .calendar_sync import CalendarAdapter, build_description, build_summary, event_window
from .config import TurnosConfig
from .conflicts import SlotLocks, blocks, find_active_conflict, slot_key
from .models import (
    Appointment, AppointmentStatus, AppointmentType, CalendarResult, Command,
    EngineResult, ParsedIntent, PAYMENT_PAID, PAYMENT_PENDING, ResultKind,
)
from .normalizer import is_valid_date, is_valid_time, normalize_text
from .repository import AppointmentRepository, RepositoryError

logger = logging.getLogger(__name__)

APPOINTMENT_TYPES = tuple(member.value for member in AppointmentType)


def _invalid(field_name: str, message: str) -> EngineResult:
    return EngineResult(ResultKind.INVALID_INPUT, invalid_field=field_name, message=message)


class AppointmentEngine:
    """
    Appointment lifecycle over an injected store and calendar adapter.

    Operations:
        schedule, list_by_date, search_by_patient, status, cancel,
        reschedule, record_payment, update_note, help
    """

    def __init__(
        self,
        config: TurnosConfig,
        repository: AppointmentRepository,
        calendar: CalendarAdapter,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Loaded configuration
            repository: Appointment store
            calendar: Calendar adapter (NullCalendarAdapter when sync is off)
            clock: Returns the current UTC time (for created_at)
            id_factory: Returns a fresh appointment id (uuid4 by default)
        """
        self.config = config
        self.repository = repository
        self.calendar = calendar
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.slot_locks = SlotLocks()

        if self.config.log_operations:
            logger.info(" AppointmentEngine initialized")

    # ========================================================================
    # Helpers
    # ========================================================================

    def _slot_guard(self, patient: str, date: str, time: str):
        if not self.config.serialize_slots:
            return nullcontext()
        return self.slot_locks.hold(slot_key(patient, date, time))

    def _log_operation(self, message: str):
        if self.config.log_operations:
            logger.info(message)

    def _check_calendar(self, result: CalendarResult, action: str, appointment_id: str) -> CalendarResult:
        if result.failed:
            logger.warning(f"️ Calendar {action} failed for {appointment_id}: {result.error}")
        return result

    def _description(self, appointment: Appointment) -> str:
        return build_description(appointment.type, appointment.payment, appointment.note)

    async def _sync_description(self, appointment: Appointment, action: str) -> Optional[CalendarResult]:
        if not appointment.calendar_ref:
            return None
        result = await self.calendar.patch_description(
            appointment.calendar_ref,
            build_summary(appointment.patient, self.config.event_label),
            self._description(appointment),
        )
        return self._check_calendar(result, action, appointment.id)

    # ========================================================================
    # Create
    # ========================================================================

    async def schedule(
        self,
        patient: Optional[str],
        date: Optional[str],
        time: Optional[str],
        appointment_type: Optional[str] = None,
    ) -> EngineResult:
        """
        Create a new ACTIVO appointment.

        Args:
            patient: Patient name (required)
            date: ISO date (required, must be a real date)
            time: HH:MM (required)
            appointment_type: PARTICULAR or OS (default: PARTICULAR)

        Returns:
            SCHEDULED with the new record, CONFLICT carrying the id already
            holding the slot, or INVALID_INPUT naming the field
        """
        patient = normalize_text(patient)
        if not patient:
            return _invalid("patient", "falta el nombre del paciente")
        if not is_valid_date(date):
            return _invalid("date", f"fecha inválida: {date or '(vacía)'}")
        if not is_valid_time(time):
            return _invalid("time", f"hora inválida: {time or '(vacía)'}")
        appointment_type = (appointment_type or AppointmentType.PARTICULAR.value).upper()
        if appointment_type not in APPOINTMENT_TYPES:
            return _invalid("type", f"tipo inválido: {appointment_type}")

        async with self._slot_guard(patient, date, time):
            records = await self.repository.read_all()
            conflict = find_active_conflict(records, patient, date, time)
            if blocks(conflict):
                _, existing = conflict
                logger.info(f" Slot taken: {patient} {date} {time} -> {existing.id}")
                return EngineResult(ResultKind.CONFLICT, appointment=existing, conflict_id=existing.id)

            appointment = Appointment(
                id=self.id_factory(),
                patient=patient,
                date=date,
                time=time,
                type=appointment_type,
                payment=PAYMENT_PENDING,
                status=AppointmentStatus.ACTIVO.value,
                created_at=self.clock().isoformat(),
            )

            start, end = event_window(date, time, self.config.session_minutes)
            calendar_result = self._check_calendar(
                await self.calendar.create(
                    build_summary(patient, self.config.event_label),
                    self._description(appointment),
                    start,
                    end,
                    self.config.timezone,
                ),
                "create",
                appointment.id,
            )
            if calendar_result.ok:
                appointment = appointment.with_changes(calendar_ref=calendar_result.event_id)

            try:
                await self.repository.append(appointment)
            except RepositoryError:
                # Drop the event of a record that was never stored
                if calendar_result.ok and calendar_result.event_id:
                    await self.calendar.delete(calendar_result.event_id)
                raise

        self._log_operation(
            f" Scheduled {appointment.id}: {patient} {date} {time} {appointment_type} "
            f"(calendar={'ok' if calendar_result.ok else calendar_result.error})"
        )
        return EngineResult(ResultKind.SCHEDULED, appointment=appointment, calendar=calendar_result)

    # ========================================================================
    # Reads
    # ========================================================================

    async def list_by_date(self, date: Optional[str]) -> EngineResult:
        """
        List every appointment on a date.

        Returns:
            LISTED with `active` and `inactive` partitions, each ordered by time
        """
        if not is_valid_date(date):
            return _invalid("date", f"fecha inválida: {date or '(vacía)'}")

        on_date = [a for _, a in await self.repository.read_all() if a.date == date]
        on_date.sort(key=lambda a: a.time)
        return EngineResult(
            ResultKind.LISTED,
            active=[a for a in on_date if a.is_active],
            inactive=[a for a in on_date if not a.is_active],
            query=date,
        )

    async def search_by_patient(self, fragment: Optional[str]) -> EngineResult:
        """
        Search appointments by folded patient-name substring.

        Returns:
            SEARCHED with at most config.search_limit matches, most recent
            first; `total` is the full match count
        """
        fragment = normalize_text(fragment)
        if not fragment:
            return _invalid("patient", "falta el nombre a buscar")

        found = [a for _, a in await self.repository.find_by_patient(fragment)]
        found.sort(key=lambda a: (a.date, a.time), reverse=True)
        return EngineResult(
            ResultKind.SEARCHED,
            matches=found[:self.config.search_limit],
            total=len(found),
            query=fragment,
        )

    async def status(self, appointment_id: Optional[str]) -> EngineResult:
        appointment_id = normalize_text(appointment_id)
        if not appointment_id:
            return _invalid("id", "falta el id del turno")

        record = await self.repository.find_by_id(appointment_id)
        if record is None:
            return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
        return EngineResult(ResultKind.STATUS, appointment=record[1])

    def help(self) -> EngineResult:
        return EngineResult(ResultKind.HELP)

    # ========================================================================
    # Mutations
    # ========================================================================

    async def cancel(self, appointment_id: Optional[str]) -> EngineResult:
        """
        Move an ACTIVO appointment to CANCELADO and delete its calendar event.

        Cancelling a record that is already CANCELADO is an invalid
        transition and leaves the record untouched.
        """
        appointment_id = normalize_text(appointment_id)
        if not appointment_id:
            return _invalid("id", "falta el id del turno")

        record = await self.repository.find_by_id(appointment_id)
        if record is None:
            return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
        position, current = record
        if not current.is_active:
            return EngineResult(ResultKind.INVALID_TRANSITION, appointment=current)

        cancelled = current.with_changes(status=AppointmentStatus.CANCELADO.value)
        await self.repository.update_at(position, cancelled)
        self._log_operation(f" Cancelled {appointment_id}")

        calendar_result = None
        if current.calendar_ref:
            calendar_result = self._check_calendar(
                await self.calendar.delete(current.calendar_ref), "delete", appointment_id
            )
        return EngineResult(ResultKind.CANCELLED, appointment=cancelled, calendar=calendar_result)

    async def reschedule(
        self,
        appointment_id: Optional[str],
        date: Optional[str],
        time: Optional[str],
    ) -> EngineResult:
        """
        Move an ACTIVO appointment to a new date and time.

        Args:
            appointment_id: Appointment to move
            date: New ISO date
            time: New HH:MM

        Returns:
            RESCHEDULED (with `previous`), NOT_FOUND, INVALID_INPUT,
            INVALID_TRANSITION when not ACTIVO, or CONFLICT when another
            active appointment holds the target slot. Moving onto the
            appointment's own slot is not a conflict.
        """
        appointment_id = normalize_text(appointment_id)
        if not appointment_id:
            return _invalid("id", "falta el id del turno")
        if not is_valid_date(date):
            return _invalid("date", f"fecha inválida: {date or '(vacía)'}")
        if not is_valid_time(time):
            return _invalid("time", f"hora inválida: {time or '(vacía)'}")

        record = await self.repository.find_by_id(appointment_id)
        if record is None:
            return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
        _, current = record
        if not current.is_active:
            return EngineResult(ResultKind.INVALID_TRANSITION, appointment=current)

        async with self._slot_guard(current.patient, date, time):
            # Fresh read under the slot lock
            records = await self.repository.read_all()
            located = next(((p, a) for p, a in records if a.id == appointment_id), None)
            if located is None:
                return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
            position, current = located
            if not current.is_active:
                return EngineResult(ResultKind.INVALID_TRANSITION, appointment=current)

            conflict = find_active_conflict(records, current.patient, date, time)
            if blocks(conflict, appointment_id):
                _, existing = conflict
                return EngineResult(ResultKind.CONFLICT, appointment=existing, conflict_id=existing.id)

            moved = current.with_changes(date=date, time=time)
            await self.repository.update_at(position, moved)

        self._log_operation(
            f" Rescheduled {appointment_id}: {current.date} {current.time} -> {date} {time}"
        )

        calendar_result = None
        if current.calendar_ref:
            start, end = event_window(date, time, self.config.session_minutes)
            calendar_result = self._check_calendar(
                await self.calendar.patch_time(current.calendar_ref, start, end, self.config.timezone),
                "time patch",
                appointment_id,
            )
        return EngineResult(
            ResultKind.RESCHEDULED, appointment=moved, previous=current, calendar=calendar_result
        )

    async def record_payment(self, appointment_id: Optional[str], detail: Optional[str] = None) -> EngineResult:
        """
        Mark an appointment as paid, on any status.

        The stored value is PAGADO, or 'PAGADO (detail)' when a detail is given.
        """
        appointment_id = normalize_text(appointment_id)
        if not appointment_id:
            return _invalid("id", "falta el id del turno")

        record = await self.repository.find_by_id(appointment_id)
        if record is None:
            return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
        position, current = record

        detail = normalize_text(detail)
        payment = f"{PAYMENT_PAID} ({detail})" if detail else PAYMENT_PAID
        paid = current.with_changes(payment=payment)
        await self.repository.update_at(position, paid)
        self._log_operation(f" Payment recorded for {appointment_id}: {payment}")

        calendar_result = await self._sync_description(paid, "description patch")
        return EngineResult(ResultKind.PAYMENT_RECORDED, appointment=paid, calendar=calendar_result)

    async def update_note(self, appointment_id: Optional[str], note: Optional[str]) -> EngineResult:
        """Replace the free-form note of an existing appointment"""
        appointment_id = normalize_text(appointment_id)
        if not appointment_id:
            return _invalid("id", "falta el id del turno")
        note = normalize_text(note)
        if not note:
            return _invalid("note", "falta el texto de la nota")

        record = await self.repository.find_by_id(appointment_id)
        if record is None:
            return EngineResult(ResultKind.NOT_FOUND, query=appointment_id)
        position, current = record

        noted = current.with_changes(note=note)
        await self.repository.update_at(position, noted)
        self._log_operation(f" Note saved for {appointment_id}")

        calendar_result = await self._sync_description(noted, "description patch")
        return EngineResult(ResultKind.NOTE_SAVED, appointment=noted, calendar=calendar_result)

    # ========================================================================
    # Dispatch
    # ========================================================================

    async def execute(self, intent: ParsedIntent) -> EngineResult:
        """
        Run the operation selected by a parsed intent.

        Args:
            intent: Output of parse_command()

        Returns:
            EngineResult; an unreachable store yields FAILURE instead of raising
        """
        if intent.errors:
            logger.debug(f" Parser notes for {intent.command.value}: {intent.errors}")

        fields = intent.fields
        try:
            if intent.command is Command.SCHEDULE:
                return await self.schedule(
                    fields.get("patient"), fields.get("date"), fields.get("time"), fields.get("type")
                )
            elif intent.command is Command.LIST:
                return await self.list_by_date(fields.get("date"))
            elif intent.command is Command.SEARCH:
                return await self.search_by_patient(fields.get("patient"))
            elif intent.command is Command.STATUS:
                return await self.status(fields.get("id"))
            elif intent.command is Command.CANCEL:
                return await self.cancel(fields.get("id"))
            elif intent.command is Command.RESCHEDULE:
                return await self.reschedule(fields.get("id"), fields.get("date"), fields.get("time"))
            elif intent.command is Command.PAY:
                return await self.record_payment(fields.get("id"), fields.get("detail"))
            elif intent.command is Command.NOTE:
                return await self.update_note(fields.get("id"), fields.get("note"))
            else:
                # AYUDA and unrecognized input share the usage text
                return self.help()
        except RepositoryError as e:
            logger.error(f" Store unavailable during {intent.command.value}: {e}", exc_info=True)
            return EngineResult(ResultKind.FAILURE, message=str(e))
