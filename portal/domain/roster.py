from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from portal.core.clock import add_minutes, is_hhmm
from portal.core.time_provider import TimeProvider, default_time_provider
from portal.domain.records import AbsenceRequestRecord, RouteBlockRecord, StudentRecord, TimeSlotRecord
from portal.domain.stores import TransportStore


logger = logging.getLogger(__name__)

UNKNOWN_STUDENT_NAME = 'Unknown'
EXCUSING_KINDS = ('absence', 'early_pickup')
ADVISORY_KINDS = ('bus_change',)
CHANGE_TYPE_LABELS = {
    'no_bus': 'Not riding the bus',
    'pickup_change': 'Pickup change',
    'dropoff_change': 'Dropoff change',
}


@dataclass(frozen=True)
class Rider:
    student_id: int
    name: str
    phone: str


@dataclass(frozen=True)
class Stop:
    block_id: int
    label: str
    time: str
    riders: list[Rider] = field(default_factory=list)


@dataclass(frozen=True)
class Advisory:
    student_id: int
    student_name: str
    reason: str


@dataclass
class Roster:
    day: date
    slot: TimeSlotRecord | None
    stops: list[Stop] = field(default_factory=list)
    advisories: list[Advisory] = field(default_factory=list)

    @property
    def total_riders(self) -> int:
        return sum(len(stop.riders) for stop in self.stops)


def display_name(student: StudentRecord) -> str:
    return (student.english_first_name or '').strip() or (student.student_name or '').strip() or UNKNOWN_STUDENT_NAME


def is_active_on(request: AbsenceRequestRecord, day: date) -> bool:
    if request.status != 'pending' or request.date_start is None:
        return False
    last_day = request.date_end or request.date_start
    return request.date_start <= day <= last_day


def excused_student_ids(requests: Iterable[AbsenceRequestRecord], day: date) -> set[int]:
    excused: set[int] = set()
    for request in requests:
        if request.kind not in EXCUSING_KINDS or request.student_id is None:
            continue
        if is_active_on(request, day):
            excused.add(request.student_id)
    return excused


def assemble_stops(slot: TimeSlotRecord, blocks: Iterable[RouteBlockRecord], excused: set[int]) -> list[Stop]:
    """Stops in route order, each timed from the slot departure and carrying its riders.

    Block times accumulate: a stop's time is the departure plus the extra
    minutes of every block up to and including it, wrapped at midnight.
    """
    stops: list[Stop] = []
    accumulated = 0
    for block in sorted(blocks, key=lambda row: row.position):
        accumulated += int(block.extra_minutes or 0)
        riders = [
            Rider(student_id=student.id, name=display_name(student), phone=student.phone or '')
            for student in block.students
            if student is not None and student.id not in excused
        ]
        stops.append(
            Stop(
                block_id=block.id,
                label=block.label,
                time=add_minutes(slot.departure_time, accumulated),
                riders=riders,
            )
        )
    return stops


def describe_bus_change(request: AbsenceRequestRecord) -> str:
    change_type = (request.change_type or '').strip()
    reason = CHANGE_TYPE_LABELS.get(change_type, change_type or 'Bus change')
    if request.time:
        reason = f'{reason} at {request.time}'
    if request.note:
        reason = f'{reason}: {request.note}'
    return reason


def bus_change_advisories(
    requests: Iterable[AbsenceRequestRecord],
    day: date,
    students_by_id: dict[int, StudentRecord],
) -> list[Advisory]:
    """Active bus changes for students on this route; the roster itself is left as is."""
    advisories: list[Advisory] = []
    for request in requests:
        if request.kind not in ADVISORY_KINDS or request.student_id is None:
            continue
        student = students_by_id.get(request.student_id)
        if student is None or not is_active_on(request, day):
            continue
        advisories.append(
            Advisory(
                student_id=student.id,
                student_name=display_name(student),
                reason=describe_bus_change(request),
            )
        )
    return advisories


class RosterAssembler:
    """Builds the stop-by-stop rider list for one bus on one time slot."""

    def __init__(self, store: TransportStore, *, time_provider: TimeProvider = default_time_provider) -> None:
        self._store = store
        self._time_provider = time_provider

    async def build(self, bus_id: int, slot_id: int, day: date | None = None) -> Roster:
        target_day = day or self._time_provider.today()
        slot = await self._store.get_slot(slot_id)
        if slot is None:
            logger.info('roster_slot_missing bus_id=%s slot_id=%s', bus_id, slot_id)
            return Roster(day=target_day, slot=None)

        if not is_hhmm(slot.departure_time):
            logger.warning(
                'roster_slot_bad_departure bus_id=%s slot_id=%s departure_time=%r',
                bus_id,
                slot_id,
                slot.departure_time,
            )
            return Roster(day=target_day, slot=slot)

        route_id = await self._store.find_route_id(bus_id, slot_id)
        if route_id is None:
            logger.info('roster_route_missing bus_id=%s slot_id=%s', bus_id, slot_id)
            return Roster(day=target_day, slot=slot)

        blocks = await self._store.list_route_blocks(route_id)
        requests = await self._store.list_pending_requests(EXCUSING_KINDS + ADVISORY_KINDS)

        excused = excused_student_ids(requests, target_day)
        stops = assemble_stops(slot, blocks, excused)
        students_by_id = {
            student.id: student
            for block in blocks
            for student in block.students
            if student is not None
        }
        advisories = bus_change_advisories(requests, target_day, students_by_id)
        logger.debug(
            'roster_built bus_id=%s slot_id=%s day=%s stops=%s excused=%s advisories=%s',
            bus_id,
            slot_id,
            target_day,
            len(stops),
            len(excused),
            len(advisories),
        )
        return Roster(day=target_day, slot=slot, stops=stops, advisories=advisories)
