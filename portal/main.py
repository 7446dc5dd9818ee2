from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from portal.config import settings
from portal.db import Base, engine
from portal.route_logging import EndpointNameRoute
from portal.routers import driver, me, parent_portal, teacher_commitments

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    logging.getLogger(__name__).info('portal_started env=%s timezone=%s', settings.app_env, settings.app_timezone)
    yield


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.request_slow_ms:
        logging.getLogger('portal.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response


app.include_router(me.router)
app.include_router(driver.router)
app.include_router(teacher_commitments.router)
app.include_router(parent_portal.router)


@app.get('/')
def root():
    return {'app': settings.app_name, 'status': 'ok'}


@app.get('/health')
def healthcheck():
    return {'status': 'ok'}
