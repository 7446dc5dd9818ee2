from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.core.router_guard import assert_class_scope, require_auth_user, require_identity
from portal.core.time_provider import default_time_provider
from portal.db import get_db, session_factory_for
from portal.route_logging import EndpointNameRoute
from portal.domain.commitment_board import CommitmentBoard, SendFailed, SendRejected, coerce_status
from portal.domain.stores import StoreUnavailableError
from portal.models import Book, Student
from portal.schemas import CommitmentAdvanceRequest, CommitmentSendRequest, CommitmentUpsertRequest
from portal.services.class_service import list_accessible_classes, serialize_class
from portal.services.commitment_store import (
    CommitmentConflictError,
    SqlCommitmentStore,
    advance_commitment,
    list_class_items,
    upsert_commitment,
)
from portal.services.identity_service import Identity, IdentityRole


router = APIRouter(prefix='/api/teacher', tags=['Teacher Commitments'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)

STAFF_ROLES = {IdentityRole.TEACHER, IdentityRole.ADMIN}


def _require_staff(request: Request, db: Session) -> Identity:
    return require_identity(db, require_auth_user(request), STAFF_ROLES)


async def _load_board(db: Session, class_id: int, day: date) -> CommitmentBoard:
    board = CommitmentBoard(SqlCommitmentStore(session_factory_for(db), time_provider=default_time_provider))
    try:
        await board.load(class_id, day)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return board


def _serialize_board(board: CommitmentBoard) -> dict:
    day = board.day.isoformat() if board.day else None
    send_statuses = board.send_statuses
    return {
        'class_id': board.class_id,
        'date': day,
        'students': [
            {
                'id': student.id,
                'student_name': student.student_name,
                'english_first_name': student.english_first_name,
                'campus': student.campus,
                'class_id': student.class_id,
            }
            for student in board.students
        ],
        'items': [{'id': item.id, 'name': item.name} for item in board.items],
        'commitments': [
            {
                'student_id': student_id,
                'book_id': item_id,
                'date': day,
                'status': status.value,
                'note': board.note_of(student_id, item_id),
            }
            for (student_id, item_id), status in board.cells().items()
        ],
        'send_statuses': {str(key): value for key, value in send_statuses.items()},
        'summary': board.summary(),
        'all_sent': board.is_all_sent(),
    }


@router.get('/classes')
def classes(request: Request, db: Session = Depends(get_db)):
    identity = _require_staff(request, db)
    return [serialize_class(row) for row in list_accessible_classes(db, identity)]


@router.get('/commitments')
async def commitments(
    request: Request,
    class_id: int = Query(...),
    day: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    identity = _require_staff(request, db)
    assert_class_scope(db, identity, class_id)
    board = await _load_board(db, class_id, day or default_time_provider.today())
    return _serialize_board(board)


@router.post('/commitments')
def upsert(payload: CommitmentUpsertRequest, request: Request, db: Session = Depends(get_db)):
    identity = _require_staff(request, db)
    assert_class_scope(db, identity, payload.class_id)
    student = db.query(Student).filter(Student.id == payload.student_id).first()
    if not student or student.class_id != payload.class_id:
        raise HTTPException(status_code=404, detail='Student not found in class')
    if not db.query(Book.id).filter(Book.id == payload.book_id).first():
        raise HTTPException(status_code=404, detail='Book not found')
    try:
        row = upsert_commitment(
            db,
            class_id=payload.class_id,
            student_id=payload.student_id,
            book_id=payload.book_id,
            day=payload.date,
            status=payload.status,
            note=payload.note,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        'id': row.id,
        'student_id': row.student_id,
        'book_id': row.book_id,
        'date': row.entry_date.isoformat(),
        'status': row.status,
        'note': row.note or '',
    }


@router.post('/commitments/advance')
def advance(payload: CommitmentAdvanceRequest, request: Request, db: Session = Depends(get_db)):
    identity = _require_staff(request, db)
    assert_class_scope(db, identity, payload.class_id)
    student = db.query(Student.id).filter(Student.id == payload.student_id, Student.class_id == payload.class_id).first()
    item_ids = {item.id for item in list_class_items(db, payload.class_id, payload.date)}
    if not student or payload.book_id not in item_ids:
        raise HTTPException(status_code=404, detail='Commitment cell not found')
    try:
        row = advance_commitment(
            db,
            class_id=payload.class_id,
            student_id=payload.student_id,
            book_id=payload.book_id,
            day=payload.date,
        )
    except CommitmentConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('commitment_advance_failed class_id=%s student_id=%s', payload.class_id, payload.student_id)
        raise HTTPException(status_code=503, detail='Commitment store unavailable') from exc
    return {
        'student_id': row.student_id,
        'book_id': row.book_id,
        'date': row.entry_date.isoformat(),
        'status': coerce_status(row.status).value,
    }


@router.post('/commitments/send')
async def send(payload: CommitmentSendRequest, request: Request, db: Session = Depends(get_db)):
    identity = _require_staff(request, db)
    assert_class_scope(db, identity, payload.class_id)
    board = await _load_board(db, payload.class_id, payload.date)
    try:
        await board.send_to_parents()
    except SendRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SendFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    logger.info('commitments_sent class_id=%s date=%s by=%s', payload.class_id, payload.date, identity.auth_user_id)
    return {'ok': True, 'students': len(board.students), 'all_sent': board.is_all_sent()}
