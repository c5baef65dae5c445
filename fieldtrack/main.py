from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from fieldtrack.config import settings
from fieldtrack.core.time_provider import default_time_provider
from fieldtrack.db import Base, engine
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.routers import auth, calendar_events, children, groups, join_requests, notifications, progress, sessions
from fieldtrack.services.domain_store import DomainStore
from fieldtrack.services.identity_store import IdentityStore
from fieldtrack.storage import KeyValueStorage, build_storage

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


def attach_stores(target: FastAPI, storage: KeyValueStorage, time_provider=default_time_provider) -> None:
    """Identity store first: the domain store reads its user list for trainer search."""
    identity_store = IdentityStore(storage, time_provider)
    target.state.time_provider = time_provider
    target.state.identity_store = identity_store
    target.state.domain_store = DomainStore(storage, identity_store, time_provider)


@asynccontextmanager
async def lifespan(target: FastAPI):
    if not getattr(target.state, 'domain_store', None):
        Base.metadata.create_all(bind=engine)
        attach_stores(target, build_storage())
    yield


def create_app() -> FastAPI:
    application = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
    application.router.route_class = EndpointNameRoute

    @application.middleware('http')
    async def slow_request_logger(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= settings.request_slow_ms:
            logging.getLogger('fieldtrack.request').info(
                'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
                request.url.path,
                request.method,
                response.status_code,
                duration_ms,
            )
        return response

    for module in (auth, groups, children, join_requests, sessions, progress, calendar_events, notifications):
        application.include_router(module.router)

    @application.get('/health')
    def healthcheck():
        return {'app': settings.app_name, 'status': 'ok'}

    return application


app = create_app()
