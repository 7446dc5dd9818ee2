from __future__ import annotations

import json
import logging
from datetime import date

from sqlalchemy.orm import Session

from portal.core.clock import is_hhmm, parse_iso_date
from portal.core.time_provider import TimeProvider, default_time_provider
from portal.domain.roster import CHANGE_TYPE_LABELS
from portal.models import PortalRequest, RequestStatus, RequestType, Student
from portal.services.transport_store import load_request_payload


logger = logging.getLogger(__name__)

RECENT_REQUEST_LIMIT = 20


class PortalRequestValidationError(ValueError):
    pass


def build_request_payload(
    request_type: str,
    *,
    date_start: date | str | None,
    date_end: date | str | None = None,
    time: str | None = None,
    change_type: str | None = None,
    note: str | None = None,
) -> dict:
    try:
        kind = RequestType(request_type)
    except ValueError as exc:
        raise PortalRequestValidationError(f'Unknown request type {request_type!r}') from exc

    start = parse_iso_date(date_start)
    if start is None:
        raise PortalRequestValidationError('dateStart is required (YYYY-MM-DD)')
    end = parse_iso_date(date_end)
    if date_end not in (None, '') and end is None:
        raise PortalRequestValidationError('dateEnd must be YYYY-MM-DD')
    if end is not None and end < start:
        raise PortalRequestValidationError('dateEnd must be on or after dateStart')

    clean_time = (time or '').strip()
    if clean_time and not is_hhmm(clean_time):
        raise PortalRequestValidationError('time must be HH:MM')
    if kind == RequestType.EARLY_PICKUP and not clean_time:
        raise PortalRequestValidationError('time is required for early pickup')

    clean_change_type = (change_type or '').strip()
    if kind == RequestType.BUS_CHANGE and clean_change_type not in CHANGE_TYPE_LABELS:
        raise PortalRequestValidationError(f'changeType must be one of {sorted(CHANGE_TYPE_LABELS)}')

    payload: dict = {'dateStart': start.isoformat()}
    if end is not None:
        payload['dateEnd'] = end.isoformat()
    if clean_time:
        payload['time'] = clean_time
    if clean_change_type:
        payload['changeType'] = clean_change_type
    clean_note = (note or '').strip()
    if clean_note:
        payload['note'] = clean_note
    return payload


def submit_portal_request(
    db: Session,
    *,
    parent_id: int,
    student_id: int,
    request_type: str,
    date_start: date | str | None,
    date_end: date | str | None = None,
    time: str | None = None,
    change_type: str | None = None,
    note: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> PortalRequest:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise LookupError('Student not found')
    if int(student.parent_id or 0) != int(parent_id):
        raise PermissionError('Student does not belong to this parent')

    payload = build_request_payload(
        request_type,
        date_start=date_start,
        date_end=date_end,
        time=time,
        change_type=change_type,
        note=note,
    )
    row = PortalRequest(
        student_id=student.id,
        request_type=request_type,
        payload_json=json.dumps(payload, ensure_ascii=False),
        status=RequestStatus.PENDING.value,
        created_at=time_provider.utcnow_naive(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        'portal_request_submitted id=%s student_id=%s type=%s date_start=%s',
        row.id,
        student.id,
        request_type,
        payload['dateStart'],
    )
    return row


def list_parent_requests(db: Session, parent_id: int, *, limit: int = RECENT_REQUEST_LIMIT) -> list[PortalRequest]:
    student_ids = [row[0] for row in db.query(Student.id).filter(Student.parent_id == parent_id).all()]
    if not student_ids:
        return []
    return (
        db.query(PortalRequest)
        .filter(PortalRequest.student_id.in_(student_ids))
        .order_by(PortalRequest.created_at.desc(), PortalRequest.id.desc())
        .limit(limit)
        .all()
    )


def serialize_request(row: PortalRequest) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'type': row.request_type,
        'status': row.status,
        'payload': load_request_payload(row.payload_json),
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }
