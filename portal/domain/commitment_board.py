from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from portal.domain.records import CurriculumItemRecord, StudentRecord
from portal.domain.stores import CommitmentGateway


logger = logging.getLogger(__name__)


class CommitmentStatus(str, Enum):
    UNCHECKED = 'unchecked'
    DONE = 'done'
    PARTIAL = 'partial'
    NOT_DONE = 'not_done'


NEXT_STATUS: dict[CommitmentStatus, CommitmentStatus] = {
    CommitmentStatus.UNCHECKED: CommitmentStatus.DONE,
    CommitmentStatus.DONE: CommitmentStatus.PARTIAL,
    CommitmentStatus.PARTIAL: CommitmentStatus.NOT_DONE,
    CommitmentStatus.NOT_DONE: CommitmentStatus.UNCHECKED,
}

SENT = 'sent'

CellKey = tuple[int, int]


def coerce_status(value: str | None) -> CommitmentStatus:
    try:
        return CommitmentStatus(value or CommitmentStatus.UNCHECKED.value)
    except ValueError:
        logger.warning('commitment_status_unknown value=%s', value)
        return CommitmentStatus.UNCHECKED


class BoardNotLoadedError(RuntimeError):
    pass


class UnknownCellError(KeyError):
    pass


class CommitmentSaveError(RuntimeError):
    """A status change could not be stored; the cell was put back."""

    def __init__(self, key: CellKey, restored: CommitmentStatus) -> None:
        super().__init__(f'Failed to save commitment for student={key[0]} item={key[1]}')
        self.key = key
        self.restored = restored


class SendRejected(ValueError):
    pass


class SendFailed(RuntimeError):
    pass


@dataclass(frozen=True)
class CellChange:
    key: CellKey
    previous: CommitmentStatus
    next: CommitmentStatus

    def apply_to(self, cells: dict[CellKey, CommitmentStatus]) -> None:
        cells[self.key] = self.next

    def revert_on(self, cells: dict[CellKey, CommitmentStatus]) -> None:
        cells[self.key] = self.previous


class CommitmentBoard:
    """Student x curriculum-item status grid for one class on one day.

    Taps advance a cell one step around ``NEXT_STATUS``. The new value is
    shown immediately and written through the gateway; a failed write puts
    the cell back to exactly what it was. Taps on the same cell wait for the
    previous write on that cell, taps on different cells do not wait on each
    other.
    """

    def __init__(self, gateway: CommitmentGateway) -> None:
        self._gateway = gateway
        self._class_id: int | None = None
        self._day: date | None = None
        self._students: list[StudentRecord] = []
        self._items: list[CurriculumItemRecord] = []
        self._cells: dict[CellKey, CommitmentStatus] = {}
        self._notes: dict[CellKey, str] = {}
        self._send_statuses: dict[int, str] = {}
        self._cell_locks: dict[CellKey, asyncio.Lock] = {}
        self._send_lock = asyncio.Lock()
        self._disposed = False
        self._generation = 0

    @property
    def class_id(self) -> int | None:
        return self._class_id

    @property
    def day(self) -> date | None:
        return self._day

    @property
    def students(self) -> list[StudentRecord]:
        return list(self._students)

    @property
    def items(self) -> list[CurriculumItemRecord]:
        return list(self._items)

    @property
    def send_statuses(self) -> dict[int, str]:
        return dict(self._send_statuses)

    def cells(self) -> dict[CellKey, CommitmentStatus]:
        return dict(self._cells)

    def note_of(self, student_id: int, item_id: int) -> str:
        return self._notes.get((student_id, item_id), '')

    def status_of(self, student_id: int, item_id: int) -> CommitmentStatus:
        key = (student_id, item_id)
        if key not in self._cells:
            raise UnknownCellError(key)
        return self._cells[key]

    def has_any_checked(self) -> bool:
        return any(status != CommitmentStatus.UNCHECKED for status in self._cells.values())

    def is_all_sent(self) -> bool:
        return bool(self._students) and all(self._send_statuses.get(s.id) == SENT for s in self._students)

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in CommitmentStatus}
        for status in self._cells.values():
            counts[status.value] += 1
        return counts

    def dispose(self) -> None:
        self._disposed = True

    async def load(self, class_id: int, day: date) -> None:
        snapshot = await self._gateway.fetch_board(class_id, day)
        if self._disposed:
            return
        cells: dict[CellKey, CommitmentStatus] = {
            (student.id, item.id): CommitmentStatus.UNCHECKED
            for student in snapshot.students
            for item in snapshot.items
        }
        notes: dict[CellKey, str] = {}
        for entry in snapshot.entries:
            key = (entry.student_id, entry.item_id)
            if key not in cells or entry.entry_date != day:
                continue
            cells[key] = coerce_status(entry.status)
            if entry.note:
                notes[key] = entry.note

        self._class_id = class_id
        self._day = day
        self._students = list(snapshot.students)
        self._items = list(snapshot.items)
        self._cells = cells
        self._notes = notes
        self._send_statuses = dict(snapshot.send_statuses)
        self._cell_locks = {}
        self._generation += 1
        logger.debug(
            'commitment_board_loaded class_id=%s day=%s students=%s items=%s entries=%s',
            class_id,
            day,
            len(self._students),
            len(self._items),
            len(snapshot.entries),
        )

    def _require_loaded(self) -> tuple[int, date]:
        if self._class_id is None or self._day is None:
            raise BoardNotLoadedError('Board has not been loaded')
        return self._class_id, self._day

    async def advance_cell(self, student_id: int, item_id: int) -> CommitmentStatus:
        class_id, day = self._require_loaded()
        key = (student_id, item_id)
        if key not in self._cells:
            raise UnknownCellError(key)

        lock = self._cell_locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key not in self._cells:
                raise UnknownCellError(key)
            generation = self._generation
            current = self._cells[key]
            change = CellChange(key=key, previous=current, next=NEXT_STATUS[current])
            change.apply_to(self._cells)
            try:
                await self._gateway.upsert_status(class_id, student_id, item_id, day, change.next.value)
            except Exception as exc:
                # A reload while the write was in flight already holds newer state.
                if not self._disposed and generation == self._generation:
                    change.revert_on(self._cells)
                logger.warning(
                    'commitment_save_failed class_id=%s student_id=%s item_id=%s status=%s error=%s',
                    class_id,
                    student_id,
                    item_id,
                    change.next.value,
                    exc,
                )
                raise CommitmentSaveError(key, change.previous) from exc
            return change.next

    async def send_to_parents(self) -> None:
        class_id, day = self._require_loaded()
        async with self._send_lock:
            if not self._students:
                raise SendRejected('No students to send reports to')
            if not self.has_any_checked():
                raise SendRejected('No coaching records to send')
            if self.is_all_sent():
                raise SendRejected('Coaching results were already sent for this date')

            try:
                await self._gateway.mark_class_sent(class_id, day)
            except Exception as exc:
                logger.warning('commitment_send_failed class_id=%s day=%s error=%s', class_id, day, exc)
                raise SendFailed('Failed to send reports') from exc

            if self._disposed:
                return
            for student in self._students:
                self._send_statuses[student.id] = SENT
            logger.info('commitment_send_done class_id=%s day=%s students=%s', class_id, day, len(self._students))
