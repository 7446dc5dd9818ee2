import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from portal.config import settings
from portal.request_context import current_endpoint


_connect_args = {'check_same_thread': False} if settings.database_url.startswith('sqlite') else {}
engine = create_engine(settings.database_url, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_SLOW_QUERY_MS = settings.db_slow_query_ms
_slow_logger = logging.getLogger('portal.db.slow_query')


@event.listens_for(engine, 'before_cursor_execute')
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


@event.listens_for(engine, 'after_cursor_execute')
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, '_query_start_time', None)
    if start is None:
        return
    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= _SLOW_QUERY_MS:
        sql_text = (statement or '').replace('\n', ' ').strip()
        _slow_logger.warning(
            'slow_query duration_ms=%.2f endpoint=%s sql=%s',
            duration_ms,
            current_endpoint.get(),
            sql_text,
        )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def session_factory_for(db: Session) -> sessionmaker:
    """A sessionmaker on the same bind as ``db``, for work that runs off the request thread."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
