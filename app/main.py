import time
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.api.router import api_router
from app.core.config import get_settings
from app.core.context import bind_identity, reset_identity
from app.core.db import close_engine, create_schema, get_session_factory, init_engine
from app.core.logging import setup_logging
from app.infra.db.seed import seed_demo_data
from app.infra.realtime import InMemoryRealtimeHub
from app.services.auth_service import AuthService

settings = get_settings()
settings.validate_security_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)

    # Initialize infrastructure
    engine = init_engine()
    app.state.db_engine = engine
    app.state.realtime_hub = InMemoryRealtimeHub()

    if settings.db_auto_create:
        await create_schema(engine)
    if settings.db_seed_demo_data:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await seed_demo_data(session)

    logger.info("app.started", env=settings.app_env, port=settings.api_port)
    yield

    # Graceful shutdown
    await close_engine(engine)
    logger.info("app.stopped")


app = FastAPI(
    title="Kanban Board API",
    version="0.1.0",
    docs_url="/docs" if settings.app_env != "production" else None,
    redoc_url="/redoc" if settings.app_env != "production" else None,
    lifespan=lifespan,
)

if settings.trusted_hosts:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.trusted_hosts,
    )

if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault(
        "Referrer-Policy",
        "strict-origin-when-cross-origin",
    )
    response.headers.setdefault(
        "Permissions-Policy",
        "camera=(), microphone=(), geolocation=()",
    )
    if settings.force_https:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=31536000; includeSubDomains",
        )
    return response


@app.middleware("http")
async def bind_request_identity(request: Request, call_next):
    """Resolve the caller from the login cookie before any handler runs."""
    identity = AuthService().validate_token(
        request.cookies.get(settings.login_token_cookie)
    )
    identity_token = bind_identity(identity)
    structlog.contextvars.bind_contextvars(
        request_id=uuid4().hex,
        method=request.method,
        path=request.url.path,
        user_id=identity.id if identity else None,
    )
    started = time.perf_counter()
    try:
        response = await call_next(request)
        logger.info(
            "request.completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()
        reset_identity(identity_token)


app.include_router(api_router, prefix="/api")


@app.get("/", tags=["meta"])
async def root() -> dict[str, str]:
    return {"service": "kanban-board-backend", "status": "ok"}
