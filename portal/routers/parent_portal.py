from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from portal.core.router_guard import require_auth_user, require_identity
from portal.core.time_provider import default_time_provider
from portal.db import get_db
from portal.route_logging import EndpointNameRoute
from portal.models import Student
from portal.schemas import PortalRequestCreate
from portal.services.coaching_report_service import build_coaching_report, get_parent_children
from portal.services.identity_service import Identity, IdentityRole
from portal.services.portal_request_service import (
    PortalRequestValidationError,
    list_parent_requests,
    serialize_request,
    submit_portal_request,
)


router = APIRouter(prefix='/api/parent', tags=['Parent Portal'], route_class=EndpointNameRoute)


def _require_parent(request: Request, db: Session) -> Identity:
    return require_identity(db, require_auth_user(request), {IdentityRole.PARENT})


@router.get('/children')
def children(request: Request, db: Session = Depends(get_db)):
    identity = _require_parent(request, db)
    return [
        {
            'id': row.id,
            'student_name': row.student_name,
            'english_first_name': row.english_first_name,
            'class_id': row.class_id,
        }
        for row in get_parent_children(db, identity.profile_id)
    ]


@router.get('/requests')
def requests(request: Request, db: Session = Depends(get_db)):
    identity = _require_parent(request, db)
    return [serialize_request(row) for row in list_parent_requests(db, identity.profile_id)]


@router.post('/requests')
def create_request(payload: PortalRequestCreate, request: Request, db: Session = Depends(get_db)):
    identity = _require_parent(request, db)
    try:
        row = submit_portal_request(
            db,
            parent_id=identity.profile_id,
            student_id=payload.student_id,
            request_type=payload.request_type,
            date_start=payload.date_start,
            date_end=payload.date_end,
            time=payload.time,
            change_type=payload.change_type,
            note=payload.note,
            time_provider=default_time_provider,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except PortalRequestValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return serialize_request(row)


@router.get('/coaching-report')
def coaching_report(
    request: Request,
    student_id: int = Query(...),
    day: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    identity = _require_parent(request, db)
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise HTTPException(status_code=404, detail='Student not found')
    if student.parent_id != identity.profile_id:
        raise HTTPException(status_code=403, detail='Forbidden')
    return build_coaching_report(db, student, day or default_time_provider.today())
