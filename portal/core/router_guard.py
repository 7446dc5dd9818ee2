from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from portal.services.auth_service import validate_session_token
from portal.services.class_service import can_access_class
from portal.services.identity_service import Identity, IdentityRole, resolve_identity


def _resolve_token(request: Request) -> str | None:
    token = request.cookies.get('auth_session')
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def require_auth_user(request: Request) -> dict:
    token = _resolve_token(request)
    session = validate_session_token(token)
    if not session:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user_id = str(session.get('user_id') or '').strip()
    if not user_id:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return {'user_id': user_id, 'token': token}


def require_identity(db: Session, user: dict, allowed_roles: set[IdentityRole] | Iterable[IdentityRole]) -> Identity:
    identity = resolve_identity(db, user.get('user_id'))
    if identity.role not in set(allowed_roles):
        raise HTTPException(status_code=403, detail='Forbidden')
    return identity


def assert_class_scope(db: Session, identity: Identity, class_id: int) -> None:
    if not can_access_class(db, identity, int(class_id)):
        raise HTTPException(status_code=403, detail='Forbidden')
