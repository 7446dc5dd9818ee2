from __future__ import annotations

from datetime import date
from typing import Protocol

from portal.domain.records import AbsenceRequestRecord, BoardSnapshot, RouteBlockRecord, TimeSlotRecord


class StoreUnavailableError(RuntimeError):
    """Transient failure talking to the backing store; safe to retry."""


class TransportStore(Protocol):
    async def get_slot(self, slot_id: int) -> TimeSlotRecord | None:
        ...

    async def find_route_id(self, bus_id: int, slot_id: int) -> int | None:
        ...

    async def list_route_blocks(self, route_id: int) -> list[RouteBlockRecord]:
        ...

    async def list_pending_requests(self, kinds: tuple[str, ...]) -> list[AbsenceRequestRecord]:
        ...


class CommitmentGateway(Protocol):
    async def fetch_board(self, class_id: int, day: date) -> BoardSnapshot:
        ...

    async def upsert_status(self, class_id: int, student_id: int, item_id: int, day: date, status: str) -> None:
        ...

    async def mark_class_sent(self, class_id: int, day: date) -> None:
        ...
