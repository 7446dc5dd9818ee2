from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.core.time_provider import TimeProvider, default_time_provider
from portal.domain.shuttle_run import RunState, next_run_state
from portal.models import ShuttleRun


logger = logging.getLogger(__name__)


def get_run(db: Session, bus_id: int, slot_id: int, day: date) -> ShuttleRun | None:
    return (
        db.query(ShuttleRun)
        .filter(ShuttleRun.bus_id == bus_id, ShuttleRun.slot_id == slot_id, ShuttleRun.run_date == day)
        .first()
    )


def serialize_run(run: ShuttleRun | None, *, bus_id: int, slot_id: int, day: date) -> dict:
    if run is None:
        return {
            'bus_id': bus_id,
            'slot_id': slot_id,
            'date': day.isoformat(),
            'state': RunState.IDLE.value,
            'started_at': None,
            'ended_at': None,
        }
    return {
        'bus_id': run.bus_id,
        'slot_id': run.slot_id,
        'date': run.run_date.isoformat(),
        'state': run.state,
        'started_at': run.started_at.isoformat() if run.started_at else None,
        'ended_at': run.ended_at.isoformat() if run.ended_at else None,
    }


def advance_run(
    db: Session,
    bus_id: int,
    slot_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> ShuttleRun:
    """Moves today's run one step along idle -> running -> ended.

    Raises RunTransitionError once the run has ended.
    """
    day = time_provider.today()
    run = get_run(db, bus_id, slot_id, day)
    if run is None:
        run = ShuttleRun(bus_id=bus_id, slot_id=slot_id, run_date=day, state=RunState.IDLE.value)
        db.add(run)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            run = get_run(db, bus_id, slot_id, day)
            if run is None:
                raise

    target = next_run_state(run.state)
    now = time_provider.utcnow_naive()
    run.state = target.value
    if target == RunState.RUNNING:
        run.started_at = now
    elif target == RunState.ENDED:
        run.ended_at = now
    db.commit()
    db.refresh(run)
    logger.info('shuttle_run_advanced bus_id=%s slot_id=%s date=%s state=%s', bus_id, slot_id, day, run.state)
    return run
