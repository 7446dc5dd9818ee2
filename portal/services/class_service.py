from __future__ import annotations

from sqlalchemy.orm import Session

from portal.models import SchoolClass, TeacherClass
from portal.services.identity_service import Identity, IdentityRole


def list_accessible_classes(db: Session, identity: Identity) -> list[SchoolClass]:
    query = db.query(SchoolClass)
    if identity.role == IdentityRole.TEACHER and not identity.is_master:
        query = query.join(TeacherClass, TeacherClass.class_id == SchoolClass.id).filter(
            TeacherClass.teacher_id == identity.profile_id
        )
    elif identity.role not in (IdentityRole.ADMIN, IdentityRole.TEACHER):
        return []
    return query.order_by(SchoolClass.name.asc(), SchoolClass.id.asc()).all()


def can_access_class(db: Session, identity: Identity, class_id: int) -> bool:
    if identity.role == IdentityRole.ADMIN:
        return True
    if identity.role != IdentityRole.TEACHER:
        return False
    if identity.is_master:
        return db.query(SchoolClass.id).filter(SchoolClass.id == class_id).first() is not None
    link = (
        db.query(TeacherClass.id)
        .filter(TeacherClass.teacher_id == identity.profile_id, TeacherClass.class_id == class_id)
        .first()
    )
    return link is not None


def serialize_class(row: SchoolClass) -> dict:
    return {'id': row.id, 'name': row.name, 'campus': row.campus or ''}
