from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from portal.core.time_provider import TimeProvider, default_time_provider
from portal.db import SessionLocal
from portal.domain.commitment_board import NEXT_STATUS, CommitmentStatus, coerce_status
from portal.domain.records import BoardSnapshot, CommitmentEntryRecord, CurriculumItemRecord, StudentRecord
from portal.domain.roster import display_name
from portal.domain.stores import StoreUnavailableError
from portal.models import Book, ClassBook, DailyReport, SendStatus, Student, StudentCommitment


logger = logging.getLogger(__name__)

VALID_STATUSES = {status.value for status in CommitmentStatus}


def to_student_record(row: Student) -> StudentRecord:
    return StudentRecord(
        id=row.id,
        student_name=row.student_name or '',
        english_first_name=row.english_first_name or '',
        campus=row.campus or '',
        class_id=row.class_id,
    )


def list_class_students(db: Session, class_id: int) -> list[StudentRecord]:
    rows = db.query(Student).filter(Student.class_id == class_id).all()
    records = [to_student_record(row) for row in rows]
    return sorted(records, key=lambda s: (display_name(s).lower(), s.id))


def list_class_items(db: Session, class_id: int, day: date) -> list[CurriculumItemRecord]:
    rows = (
        db.query(Book)
        .join(ClassBook, ClassBook.book_id == Book.id)
        .filter(
            ClassBook.class_id == class_id,
            or_(ClassBook.active_from.is_(None), ClassBook.active_from <= day),
            or_(ClassBook.active_to.is_(None), ClassBook.active_to >= day),
        )
        .order_by(ClassBook.position.asc(), Book.name.asc(), Book.id.asc())
        .all()
    )
    return [CurriculumItemRecord(id=row.id, name=row.name) for row in rows]


def list_class_entries(db: Session, class_id: int, day: date) -> list[CommitmentEntryRecord]:
    rows = (
        db.query(StudentCommitment)
        .filter(StudentCommitment.class_id == class_id, StudentCommitment.entry_date == day)
        .all()
    )
    return [
        CommitmentEntryRecord(
            student_id=row.student_id,
            item_id=row.book_id,
            entry_date=row.entry_date,
            status=row.status,
            note=row.note or '',
        )
        for row in rows
    ]


def list_send_statuses(db: Session, class_id: int, day: date) -> dict[int, str]:
    rows = db.query(DailyReport).filter(DailyReport.class_id == class_id, DailyReport.report_date == day).all()
    return {row.student_id: row.send_status for row in rows}


def load_board_snapshot(db: Session, class_id: int, day: date) -> BoardSnapshot:
    return BoardSnapshot(
        class_id=class_id,
        day=day,
        students=list_class_students(db, class_id),
        items=list_class_items(db, class_id, day),
        entries=list_class_entries(db, class_id, day),
        send_statuses=list_send_statuses(db, class_id, day),
    )


def upsert_commitment(
    db: Session,
    *,
    class_id: int,
    student_id: int,
    book_id: int,
    day: date,
    status: str,
    note: str | None = None,
) -> StudentCommitment:
    if status not in VALID_STATUSES:
        raise ValueError(f'Invalid commitment status {status!r}')

    def _apply(row: StudentCommitment) -> None:
        row.status = status
        row.class_id = class_id
        if note is not None:
            row.note = note

    query = db.query(StudentCommitment).filter(
        StudentCommitment.student_id == student_id,
        StudentCommitment.book_id == book_id,
        StudentCommitment.entry_date == day,
    )
    row = query.first()
    if row is None:
        row = StudentCommitment(student_id=student_id, book_id=book_id, class_id=class_id, entry_date=day, note='')
        _apply(row)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # Another writer created the same key first; fall through to update it.
            db.rollback()
            row = query.first()
            if row is None:
                raise
            _apply(row)
            db.commit()
    else:
        _apply(row)
        db.commit()
    db.refresh(row)
    logger.info(
        'commitment_upserted class_id=%s student_id=%s book_id=%s date=%s status=%s',
        class_id,
        student_id,
        book_id,
        day,
        status,
    )
    return row


def mark_class_sent(
    db: Session,
    class_id: int,
    day: date,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> int:
    student_ids = [row[0] for row in db.query(Student.id).filter(Student.class_id == class_id).all()]
    if not student_ids:
        return 0
    existing = {
        row.student_id: row
        for row in db.query(DailyReport).filter(DailyReport.class_id == class_id, DailyReport.report_date == day).all()
    }
    sent_at = time_provider.utcnow_naive()
    for student_id in student_ids:
        row = existing.get(student_id)
        if row is None:
            row = DailyReport(student_id=student_id, class_id=class_id, report_date=day)
            db.add(row)
        row.send_status = SendStatus.SENT.value
        row.sent_at = sent_at
    db.commit()
    logger.info('daily_reports_marked_sent class_id=%s date=%s students=%s', class_id, day, len(student_ids))
    return len(student_ids)


class CommitmentConflictError(RuntimeError):
    pass


def set_status_if_current(db: Session, row_id: int, *, expected: str, status: str, class_id: int) -> bool:
    """Write ``status`` only while the stored value is still ``expected``."""
    updated = (
        db.query(StudentCommitment)
        .filter(StudentCommitment.id == row_id, StudentCommitment.status == expected)
        .update({StudentCommitment.status: status, StudentCommitment.class_id: class_id}, synchronize_session=False)
    )
    db.commit()
    return bool(updated)


def advance_commitment(
    db: Session,
    *,
    class_id: int,
    student_id: int,
    book_id: int,
    day: date,
    max_attempts: int = 10,
) -> StudentCommitment:
    """Move one cell to the next status, starting from whatever is stored now.

    Concurrent advances on the same cell each land: a write only applies while
    the row still holds the status it was computed from, otherwise the row is
    read again and the step recomputed.
    """
    query = db.query(StudentCommitment).filter(
        StudentCommitment.student_id == student_id,
        StudentCommitment.book_id == book_id,
        StudentCommitment.entry_date == day,
    )
    for attempt in range(1, max_attempts + 1):
        row = query.first()
        if row is None:
            row = StudentCommitment(
                student_id=student_id,
                book_id=book_id,
                class_id=class_id,
                entry_date=day,
                status=NEXT_STATUS[CommitmentStatus.UNCHECKED].value,
                note='',
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info(
                    'commitment_advance_retry reason=insert_race student_id=%s book_id=%s attempt=%s',
                    student_id,
                    book_id,
                    attempt,
                )
                continue
        else:
            current = row.status
            target = NEXT_STATUS[coerce_status(current)].value
            if not set_status_if_current(db, row.id, expected=current, status=target, class_id=class_id):
                logger.info(
                    'commitment_advance_retry reason=stale student_id=%s book_id=%s attempt=%s',
                    student_id,
                    book_id,
                    attempt,
                )
                continue
        db.refresh(row)
        logger.info(
            'commitment_advanced class_id=%s student_id=%s book_id=%s date=%s status=%s',
            class_id,
            student_id,
            book_id,
            day,
            row.status,
        )
        return row
    raise CommitmentConflictError(f'Cell {student_id}/{book_id} kept changing after {max_attempts} attempts')


class SqlCommitmentStore:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        *,
        time_provider: TimeProvider = default_time_provider,
    ) -> None:
        self._session_factory = session_factory
        self._time_provider = time_provider

    def _call(self, fn, *args, **kwargs):
        # One session per call: calls overlap on threadpool workers.
        db = self._session_factory()
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def _run(self, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(self._call, fn, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception('commitment_store_query_failed op=%s', getattr(fn, '__name__', fn))
            raise StoreUnavailableError('Commitment store unavailable') from exc

    async def fetch_board(self, class_id: int, day: date) -> BoardSnapshot:
        return await self._run(load_board_snapshot, class_id, day)

    async def upsert_status(self, class_id: int, student_id: int, item_id: int, day: date, status: str) -> None:
        await self._run(
            upsert_commitment,
            class_id=class_id,
            student_id=student_id,
            book_id=item_id,
            day=day,
            status=status,
        )

    async def mark_class_sent(self, class_id: int, day: date) -> None:
        await self._run(mark_class_sent, class_id, day, time_provider=self._time_provider)
