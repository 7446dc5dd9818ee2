from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Integer, literal, select, union_all
from sqlalchemy.orm import Session

from portal.models import AdminProfile, Driver, Parent, Teacher


logger = logging.getLogger(__name__)


class IdentityRole(str, Enum):
    ADMIN = 'admin'
    TEACHER = 'teacher'
    DRIVER = 'driver'
    PARENT = 'parent'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class Identity:
    auth_user_id: str
    role: IdentityRole
    profile_id: int | None = None
    name: str = ''
    is_master: bool = False
    bus_id: int | None = None

    @property
    def is_known(self) -> bool:
        return self.role != IdentityRole.UNKNOWN


def resolve_identity(db: Session, auth_user_id: str | None) -> Identity:
    """Single lookup across the profile tables; lower priority number wins."""
    clean_id = str(auth_user_id or '').strip()
    if not clean_id:
        return Identity(auth_user_id='', role=IdentityRole.UNKNOWN)

    candidates = union_all(
        select(
            literal(0).label('priority'),
            literal(IdentityRole.ADMIN.value).label('role'),
            AdminProfile.id.label('profile_id'),
            AdminProfile.name.label('name'),
            literal('').label('detail'),
            literal(None, Integer).label('bus_id'),
        ).where(AdminProfile.auth_user_id == clean_id),
        select(
            literal(1).label('priority'),
            literal(IdentityRole.TEACHER.value).label('role'),
            Teacher.id.label('profile_id'),
            Teacher.name.label('name'),
            Teacher.role.label('detail'),
            literal(None, Integer).label('bus_id'),
        ).where(Teacher.auth_user_id == clean_id),
        select(
            literal(2).label('priority'),
            literal(IdentityRole.DRIVER.value).label('role'),
            Driver.id.label('profile_id'),
            Driver.name.label('name'),
            literal('').label('detail'),
            Driver.bus_id.label('bus_id'),
        ).where(Driver.auth_user_id == clean_id),
        select(
            literal(3).label('priority'),
            literal(IdentityRole.PARENT.value).label('role'),
            Parent.id.label('profile_id'),
            Parent.name.label('name'),
            literal('').label('detail'),
            literal(None, Integer).label('bus_id'),
        ).where(Parent.auth_user_id == clean_id),
    ).subquery()

    row = db.execute(select(candidates).order_by(candidates.c.priority.asc()).limit(1)).first()
    if row is None:
        logger.info('identity_unresolved auth_user_id=%s', clean_id)
        return Identity(auth_user_id=clean_id, role=IdentityRole.UNKNOWN)

    return Identity(
        auth_user_id=clean_id,
        role=IdentityRole(row.role),
        profile_id=int(row.profile_id),
        name=row.name or '',
        is_master=(row.detail or '') == 'master_teacher',
        bus_id=int(row.bus_id) if row.bus_id is not None else None,
    )
