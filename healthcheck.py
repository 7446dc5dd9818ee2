import sys

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import text

from portal.config import settings
from portal.core.clock import is_hhmm
from portal.db import SessionLocal, engine
from portal.models import TransportTimeSlot
from portal.services.auth_service import issue_session_token, validate_session_token


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity():
    with engine.connect() as conn:
        conn.execute(text('SELECT 1'))
    return 'connect ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_required_settings():
    required = {
        'DATABASE_URL': settings.database_url,
        'AUTH_SECRET': settings.auth_secret,
        'APP_TIMEZONE': settings.app_timezone,
    }
    missing = [key for key, value in required.items() if not str(value).strip()]
    if missing:
        raise RuntimeError(f'Missing settings: {", ".join(missing)}')
    if settings.app_env != 'local' and settings.auth_secret == 'change-me':
        raise RuntimeError('AUTH_SECRET still has the default value')
    return 'all required settings present'


def check_time_slots():
    db = SessionLocal()
    try:
        rows = db.query(TransportTimeSlot).all()
        bad = [row.id for row in rows if not is_hhmm(row.departure_time)]
        if bad:
            raise RuntimeError(f'Time slots with invalid departure_time: {bad}')
        return f'slots={len(rows)}'
    finally:
        db.close()


def check_session_token_roundtrip():
    issued = issue_session_token('healthcheck')
    session = validate_session_token(issued['token'])
    if not session or session.get('user_id') != 'healthcheck':
        raise RuntimeError('Issued session token did not validate')
    return 'issue/validate ok'


def main():
    checks = [
        ('Database connectivity', check_db_connectivity),
        ('Alembic migration status at head', check_alembic_head),
        ('Required settings present', check_required_settings),
        ('Transport time slots well-formed', check_time_slots),
        ('Session token issue and validate', check_session_token_roundtrip),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()
