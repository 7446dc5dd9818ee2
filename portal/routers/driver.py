from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from portal.core.router_guard import require_auth_user, require_identity
from portal.core.time_provider import default_time_provider
from portal.db import get_db, session_factory_for
from portal.route_logging import EndpointNameRoute
from portal.domain.roster import Roster, RosterAssembler
from portal.domain.shuttle_run import RunTransitionError
from portal.domain.stores import StoreUnavailableError
from portal.models import TransportTimeSlot
from portal.schemas import RunAdvanceRequest
from portal.services.identity_service import Identity, IdentityRole
from portal.services.shuttle_run_service import advance_run, get_run, serialize_run
from portal.services.transport_store import SqlTransportStore, list_time_slots


router = APIRouter(prefix='/api/driver', tags=['Driver'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)


def _require_driver(request: Request, db: Session) -> Identity:
    identity = require_identity(db, require_auth_user(request), {IdentityRole.DRIVER})
    if identity.bus_id is None:
        raise HTTPException(status_code=404, detail='No bus assigned to this driver')
    return identity


def _require_slot(db: Session, slot_id: int) -> None:
    if not db.query(TransportTimeSlot.id).filter(TransportTimeSlot.id == slot_id).first():
        raise HTTPException(status_code=404, detail='Time slot not found')


def _serialize_roster(roster: Roster) -> dict:
    slot = roster.slot
    return {
        'date': roster.day.isoformat(),
        'slot': (
            {
                'id': slot.id,
                'route_type': slot.route_type,
                'label': slot.label,
                'departure_time': slot.departure_time,
            }
            if slot
            else None
        ),
        'total_riders': roster.total_riders,
        'stops': [
            {
                'block_id': stop.block_id,
                'label': stop.label,
                'time': stop.time,
                'riders': [
                    {'student_id': rider.student_id, 'name': rider.name, 'phone': rider.phone}
                    for rider in stop.riders
                ],
            }
            for stop in roster.stops
        ],
        'advisories': [
            {'student_id': item.student_id, 'student_name': item.student_name, 'reason': item.reason}
            for item in roster.advisories
        ],
    }


@router.get('/slots')
def slots(request: Request, db: Session = Depends(get_db)):
    _require_driver(request, db)
    return [
        {'id': slot.id, 'route_type': slot.route_type, 'label': slot.label, 'departure_time': slot.departure_time}
        for slot in list_time_slots(db)
    ]


@router.get('/roster')
async def roster(
    request: Request,
    slot_id: int = Query(...),
    day: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    identity = _require_driver(request, db)
    assembler = RosterAssembler(SqlTransportStore(session_factory_for(db)), time_provider=default_time_provider)
    try:
        result = await assembler.build(identity.bus_id, slot_id, day)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _serialize_roster(result)


@router.get('/runs')
def run_state(request: Request, slot_id: int = Query(...), db: Session = Depends(get_db)):
    identity = _require_driver(request, db)
    _require_slot(db, slot_id)
    today = default_time_provider.today()
    run = get_run(db, identity.bus_id, slot_id, today)
    return serialize_run(run, bus_id=identity.bus_id, slot_id=slot_id, day=today)


@router.post('/runs/advance')
def run_advance(payload: RunAdvanceRequest, request: Request, db: Session = Depends(get_db)):
    identity = _require_driver(request, db)
    _require_slot(db, payload.slot_id)
    try:
        run = advance_run(db, identity.bus_id, payload.slot_id, time_provider=default_time_provider)
    except RunTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return serialize_run(run, bus_id=identity.bus_id, slot_id=payload.slot_id, day=run.run_date)
