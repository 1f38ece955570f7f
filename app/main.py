from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import v1_router
from app.config import settings
from app.core.database import close_db, init_db
from app.core.exceptions import PortalError, portal_error_handler
from app.core.middleware import AuthMiddleware, RequestLoggingMiddleware
from app.services.disclosure import DisclosureRegistry

_NAME_TO_LEVEL = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "warn": 30,
    "error": 40,
    "critical": 50,
}

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _NAME_TO_LEVEL.get(settings.portal_log_level.lower(), 20)
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    await init_db()
    logger.info("portal_keys_starting", db_url=settings.portal_db_url.split("://", 1)[0])
    yield

    await close_db()
    logger.info("portal_keys_stopping")


app = FastAPI(
    title="Portal Keys Backend",
    description="API key issuance for the messaging dashboard — hashed storage, one-time disclosure",
    version="0.1.0",
    lifespan=lifespan,
)

# One disclosure slot per session context, process local
app.state.disclosures = DisclosureRegistry()

# Exception handler
app.add_exception_handler(PortalError, portal_error_handler)

# Middleware (Starlette: last-added = outermost)
# 1. RequestLogging (outermost) — logs all requests including auth rejections
# 2. CORS — handles preflight before auth
# 3. Auth — identity token validation (innermost)
app.add_middleware(AuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.portal_cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(v1_router)


@app.get("/")
async def root():
    return {"service": "portal-keys-backend", "version": "0.1.0"}
