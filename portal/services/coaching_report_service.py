from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from portal.domain.commitment_board import coerce_status
from portal.domain.roster import display_name
from portal.models import Book, DailyReport, Student, StudentCommitment
from portal.services.commitment_store import to_student_record


UNASSIGNED_BOOK_NAME = 'Unassigned subject'


def get_parent_children(db: Session, parent_id: int) -> list[Student]:
    return db.query(Student).filter(Student.parent_id == parent_id).order_by(Student.id.asc()).all()


def build_coaching_report(db: Session, student: Student, day: date) -> dict:
    """One child's coaching results for a day, as the parent sees them."""
    rows = (
        db.query(StudentCommitment)
        .filter(StudentCommitment.student_id == student.id, StudentCommitment.entry_date == day)
        .order_by(StudentCommitment.id.asc())
        .all()
    )
    book_ids = {row.book_id for row in rows if row.book_id}
    book_names: dict[int, str] = {}
    if book_ids:
        book_names = {book.id: book.name for book in db.query(Book).filter(Book.id.in_(book_ids)).all()}

    send_status = None
    if student.class_id:
        report = (
            db.query(DailyReport)
            .filter(
                DailyReport.student_id == student.id,
                DailyReport.class_id == student.class_id,
                DailyReport.report_date == day,
            )
            .first()
        )
        send_status = report.send_status if report else None

    return {
        'student_id': student.id,
        'student_name': display_name(to_student_record(student)),
        'date': day.isoformat(),
        'send_status': send_status,
        'items': [
            {
                'book_id': row.book_id,
                'book_name': book_names.get(row.book_id) or UNASSIGNED_BOOK_NAME,
                'status': coerce_status(row.status).value,
                'note': row.note or '',
            }
            for row in rows
        ],
    }
