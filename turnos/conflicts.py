"""
Slot conflict detection for the turnos appointment assistant

A slot is the triple (folded patient, date, time). Among ACTIVO records a
slot is held by at most one appointment.

The store only offers read/append/update-by-position, so the read that
detects a conflict and the write that follows are not atomic. SlotLocks
serializes schedule/reschedule for the same slot inside one process; two
processes (or workers) can still double-book the same slot.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

from .models import Appointment
from .normalizer import fold_for_match

SlotKey = Tuple[str, str, str]


def slot_key(patient: str, date: str, time: str) -> SlotKey:
    """Key used for slot comparison and locking"""
    return fold_for_match(patient), date, time


def find_active_conflict(
    records: Iterable[Tuple[int, Appointment]],
    patient: str,
    date: str,
    time: str,
) -> Optional[Tuple[int, Appointment]]:
    """
    Find the first active appointment holding the given slot.

    Args:
        records: (position, appointment) pairs in store order
        patient: Patient name (compared folded)
        date: ISO date
        time: HH:MM

    Returns:
        (position, appointment) of the first ACTIVO match, or None
    """
    wanted = slot_key(patient, date, time)
    for position, appointment in records:
        if not appointment.id or not appointment.is_active:
            continue
        if slot_key(appointment.patient, appointment.date, appointment.time) == wanted:
            return position, appointment
    return None


def blocks(conflict: Optional[Tuple[int, Appointment]], appointment_id: Optional[str] = None) -> bool:
    """
    Decide whether a conflict blocks the operation.

    Any match blocks a new appointment. When moving an existing appointment
    (appointment_id given) a match on the appointment itself is not a conflict.
    """
    if conflict is None:
        return False
    return conflict[1].id != appointment_id


class SlotLocks:
    """In-process per-slot locks; entries are dropped once nobody holds or waits"""

    def __init__(self):
        self._locks: Dict[SlotKey, asyncio.Lock] = {}
        self._users: Dict[SlotKey, int] = {}

    @asynccontextmanager
    async def hold(self, key: SlotKey) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
