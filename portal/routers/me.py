from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from portal.core.router_guard import require_auth_user
from portal.db import get_db
from portal.route_logging import EndpointNameRoute
from portal.services.auth_service import clear_session_token
from portal.services.identity_service import resolve_identity


router = APIRouter(prefix='/api', tags=['Identity'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)


@router.get('/me')
def me(request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    identity = resolve_identity(db, user['user_id'])
    return {
        'auth_user_id': identity.auth_user_id,
        'role': identity.role.value,
        'profile_id': identity.profile_id,
        'name': identity.name,
        'is_master': identity.is_master,
        'bus_id': identity.bus_id,
    }


@router.post('/logout')
def logout(request: Request):
    user = require_auth_user(request)
    clear_session_token(user['token'])
    logger.info('session_logout user_id=%s', user['user_id'])
    return {'ok': True}
