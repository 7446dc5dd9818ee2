from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class StudentRecord:
    id: int
    student_name: str = ''
    english_first_name: str = ''
    campus: str = ''
    class_id: int | None = None
    phone: str | None = None


@dataclass(frozen=True)
class TimeSlotRecord:
    id: int
    route_type: str
    label: str
    departure_time: str


@dataclass(frozen=True)
class RouteBlockRecord:
    id: int
    position: int
    label: str
    extra_minutes: int = 0
    # None marks a block link whose student row no longer exists.
    students: tuple[StudentRecord | None, ...] = ()


@dataclass(frozen=True)
class AbsenceRequestRecord:
    id: int
    student_id: int | None
    kind: str
    status: str
    date_start: date | None
    date_end: date | None = None
    time: str | None = None
    change_type: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class CurriculumItemRecord:
    id: int
    name: str


@dataclass(frozen=True)
class CommitmentEntryRecord:
    student_id: int
    item_id: int
    entry_date: date
    status: str
    note: str = ''


@dataclass
class BoardSnapshot:
    class_id: int
    day: date
    students: list[StudentRecord] = field(default_factory=list)
    items: list[CurriculumItemRecord] = field(default_factory=list)
    entries: list[CommitmentEntryRecord] = field(default_factory=list)
    send_statuses: dict[int, str] = field(default_factory=dict)
