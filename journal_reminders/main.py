"""FastAPI application: lifespan, middleware, error handlers and routers."""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from . import tasks
from .config import settings, setup_logging
from .database.base import get_db
from .dependencies import AuthRequired
from .notifications.gateway import DisabledPushGateway, create_push_gateway
from .rate_limit import limiter

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
ALEMBIC_DIR = Path(__file__).resolve().parent.parent / "alembic"
RATE_LIMIT_RETRY_SECONDS = 60

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

_started_at: float | None = None


def _upgrade_schema() -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", settings.effective_database_url)
    command.upgrade(cfg, "head")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _started_at
    setup_logging()
    _upgrade_schema()

    if not settings.service_role_key:
        logger.warning("SERVICE_ROLE_KEY is empty; the internal tick endpoint is locked")
    app.state.push_gateway = create_push_gateway(
        ttl=settings.push_ttl_seconds,
        timeout=settings.push_timeout_seconds,
    )
    _started_at = time.monotonic()

    yield

    pending = len(tasks.pending())
    if pending:
        logger.info("Waiting for %d background task(s) before shutdown", pending)
    await tasks.drain(timeout=settings.push_timeout_seconds)


def _install_error_handlers(app: FastAPI) -> None:
    async def on_auth_required(request: Request, exc: AuthRequired) -> JSONResponse:
        return JSONResponse({"error": "Authentication required"}, status_code=401)

    async def on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            {"error": "Too many requests", "detail": str(exc.detail), "retry_after": RATE_LIMIT_RETRY_SECONDS},
            status_code=429,
            headers={"Retry-After": str(RATE_LIMIT_RETRY_SECONDS)},
        )

    async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    app.add_exception_handler(AuthRequired, on_auth_required)
    app.add_exception_handler(RateLimitExceeded, on_rate_limited)
    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(Exception, on_unhandled)


def _install_middleware(app: FastAPI) -> None:
    # Added innermost first; the last one added wraps all the others.
    app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, max_age=7 * 24 * 3600)

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    if settings.trusted_hosts_list != ["*"]:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts_list)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def create_app() -> FastAPI:
    app = FastAPI(title="Journal Reminders", version=VERSION, lifespan=lifespan)
    _install_error_handlers(app)
    _install_middleware(app)

    from .api_v1 import api_v1_router

    app.include_router(api_v1_router)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError:
            logger.warning("Health check could not reach the database")
            db_ok = False

        gateway = getattr(app.state, "push_gateway", None)
        return {
            "status": "ok" if db_ok else "degraded",
            "db": "ok" if db_ok else "unreachable",
            "push": "disabled" if gateway is None or isinstance(gateway, DisabledPushGateway) else "enabled",
            "version": VERSION,
            "uptime_seconds": round(time.monotonic() - _started_at, 1) if _started_at else 0.0,
        }

    return app


app = create_app()
