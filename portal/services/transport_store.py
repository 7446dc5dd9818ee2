from __future__ import annotations

import json
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from starlette.concurrency import run_in_threadpool

from portal.core.clock import parse_iso_date
from portal.db import SessionLocal
from portal.domain.records import AbsenceRequestRecord, RouteBlockRecord, StudentRecord, TimeSlotRecord
from portal.domain.stores import StoreUnavailableError
from portal.models import BusRoute, Parent, PortalRequest, RequestStatus, RouteBlock, Student, TransportTimeSlot


logger = logging.getLogger(__name__)


def load_request_payload(raw: str | None) -> dict:
    try:
        payload = json.loads(raw or '{}')
    except (TypeError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def to_request_record(row: PortalRequest) -> AbsenceRequestRecord:
    payload = load_request_payload(row.payload_json)
    return AbsenceRequestRecord(
        id=row.id,
        student_id=row.student_id,
        kind=row.request_type,
        status=row.status,
        date_start=parse_iso_date(payload.get('dateStart')),
        date_end=parse_iso_date(payload.get('dateEnd')),
        time=payload.get('time') or None,
        change_type=payload.get('changeType') or None,
        note=payload.get('note') or None,
    )


def to_slot_record(row: TransportTimeSlot) -> TimeSlotRecord:
    return TimeSlotRecord(id=row.id, route_type=row.route_type, label=row.label, departure_time=row.departure_time)


def list_time_slots(db: Session) -> list[TimeSlotRecord]:
    rows = db.query(TransportTimeSlot).order_by(TransportTimeSlot.departure_time.asc(), TransportTimeSlot.id.asc()).all()
    return [to_slot_record(row) for row in rows]


class SqlTransportStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def _call(self, fn, *args):
        db = self._session_factory()
        try:
            return fn(db, *args)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def _run(self, fn, *args):
        try:
            return await run_in_threadpool(self._call, fn, *args)
        except SQLAlchemyError as exc:
            logger.exception('transport_store_query_failed op=%s', getattr(fn, '__name__', fn))
            raise StoreUnavailableError('Transport store unavailable') from exc

    async def get_slot(self, slot_id: int) -> TimeSlotRecord | None:
        return await self._run(self._get_slot, slot_id)

    async def find_route_id(self, bus_id: int, slot_id: int) -> int | None:
        return await self._run(self._find_route_id, bus_id, slot_id)

    async def list_route_blocks(self, route_id: int) -> list[RouteBlockRecord]:
        return await self._run(self._list_route_blocks, route_id)

    async def list_pending_requests(self, kinds: tuple[str, ...]) -> list[AbsenceRequestRecord]:
        return await self._run(self._list_pending_requests, kinds)

    def _get_slot(self, db: Session, slot_id: int) -> TimeSlotRecord | None:
        row = db.query(TransportTimeSlot).filter(TransportTimeSlot.id == slot_id).first()
        return to_slot_record(row) if row else None

    def _find_route_id(self, db: Session, bus_id: int, slot_id: int) -> int | None:
        row = db.query(BusRoute.id).filter(BusRoute.bus_id == bus_id, BusRoute.slot_id == slot_id).first()
        return int(row[0]) if row else None

    def _list_route_blocks(self, db: Session, route_id: int) -> list[RouteBlockRecord]:
        blocks = (
            db.query(RouteBlock)
            .options(selectinload(RouteBlock.student_links))
            .filter(RouteBlock.route_id == route_id)
            .order_by(RouteBlock.block_order.asc(), RouteBlock.id.asc())
            .all()
        )
        student_ids = {link.student_id for block in blocks for link in block.student_links}
        students: dict[int, StudentRecord] = {}
        if student_ids:
            rows = (
                db.query(Student, Parent.phone)
                .outerjoin(Parent, Parent.id == Student.parent_id)
                .filter(Student.id.in_(student_ids))
                .all()
            )
            for student, phone in rows:
                students[student.id] = StudentRecord(
                    id=student.id,
                    student_name=student.student_name or '',
                    english_first_name=student.english_first_name or '',
                    campus=student.campus or '',
                    class_id=student.class_id,
                    phone=phone or None,
                )

        missing = student_ids - set(students)
        if missing:
            logger.debug('route_block_students_missing route_id=%s student_ids=%s', route_id, sorted(missing))

        return [
            RouteBlockRecord(
                id=block.id,
                position=int(block.block_order or 0),
                label=block.label or '',
                extra_minutes=int(block.estimated_extra_time or 0),
                students=tuple(students.get(link.student_id) for link in sorted(block.student_links, key=lambda l: l.id)),
            )
            for block in blocks
        ]

    def _list_pending_requests(self, db: Session, kinds: tuple[str, ...]) -> list[AbsenceRequestRecord]:
        rows = (
            db.query(PortalRequest)
            .filter(
                PortalRequest.request_type.in_(kinds),
                PortalRequest.status == RequestStatus.PENDING.value,
            )
            .order_by(PortalRequest.id.asc())
            .all()
        )
        return [to_request_record(row) for row in rows]
