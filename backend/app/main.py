"""
Mailroom Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       service construction and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn app.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────┐ ┌──────────┐ ┌──────┐ ┌──────┐             │
    │  │  Req ID  │→│ Logging  │→│ GZip │→│ CORS │             │
    │  └──────────┘ └──────────┘ └──────┘ └──────┘             │
    │                                                          │
    │  Routes:                                                 │
    │  /api/contacts  /api/templates  /api/ai-prompt-templates │
    │  /api/users     /health         /uploads (static)        │
    │                                                          │
    │  app.state:                                              │
    │  settings, engine, session_factory, attachment_store     │
    │  and one instance per service                            │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation/Duplicate→400 │ Unauthorized→401             │
    │  Forbidden→403 │ NotFound→404 │ Storage/DB/unexpected→500│
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)
    3. Wait for the database (tenacity-retried SELECT 1)

    Shutdown:
    1. Dispose database engine (close all connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.config import Settings, settings
from app.database import build_engine, build_session_factory, check_connection, dispose_engine
from app.exceptions import MailroomError, ValidationError
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import ai_prompt_templates, contacts, health, templates, users
from app.services.ai_prompt_template_service import AIPromptTemplateService
from app.services.attachment_store import AttachmentStore
from app.services.auth_service import AuthService
from app.services.contact_service import ContactService
from app.services.template_service import TemplateService

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "Internal server error"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = settings.log_level) -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request ids are part of the access-log message itself.
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # These log every statement / connection at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("Mailroom Backend %s starting up...", __version__)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: the API stays up so health checks can report it
        logger.error("Configuration error: %s", str(e))

    try:
        await check_connection(app.state.engine, app_settings)
        logger.info("Database reachable")
    except Exception as e:
        logger.error("Database unreachable after %d attempts: %s",
                     app_settings.db_connect_attempts, str(e))
        raise

    logger.info("Attachment storage: %s", app.state.attachment_store.storage_root)
    logger.info("Auth on mutating routes: %s",
                "required" if app_settings.require_auth else "optional")
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Mailroom Backend shutting down...")
    await dispose_engine(app.state.engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build the `{"success": false, ...}` envelope."""
    content: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "request_id": _request_id(request),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _validation_message(exc: RequestValidationError) -> str:
    """First request-validation problem as a readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    message = str(first.get("msg", "Validation failed"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    field = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    if field and not message.startswith("Invalid"):
        return f"{'.'.join(field)}: {message}"
    return message


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to status codes and the error envelope.

    Handler hierarchy:
        MailroomError subclasses → their own status_code / code
        RequestValidationError   → 400 (FastAPI's default would be 422)
        StarletteHTTPException   → its status (unknown route, bad method)
        Exception (fallback)     → 500, stack trace logged only

    Security: 5xx responses never carry internal details; they are logged
    server-side with the request id.
    """

    @app.exception_handler(MailroomError)
    async def handle_mailroom_error(request: Request, exc: MailroomError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s",
                         rid, type(exc).__name__, exc.message, exc.context)
            return error_response(request, exc.status_code, GENERIC_SERVER_ERROR, exc.code)

        logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        details = exc.context if isinstance(exc, ValidationError) else None
        return error_response(request, exc.status_code, exc.message, exc.code, details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning("[%s] Request validation error: %s", _request_id(request), message)
        return error_response(
            request,
            400,
            message,
            ValidationError.code,
            {"errors": [
                {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
                for err in exc.errors()
            ]},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return error_response(request, exc.status_code, str(exc.detail), "http_error")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        return error_response(request, 500, GENERIC_SERVER_ERROR, MailroomError.code)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Assemble the application.

    Args:
        app_settings: configuration to build against; defaults to the
            environment-loaded singleton. Tests pass their own.

    Services are constructed here, once per app, and stored on `app.state`
    for the dependencies in `app.dependencies`.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Mailroom API",
        description=(
            "Contacts, email templates, AI prompt templates and users, with "
            "optional file attachments."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Services ──────────────────────────────────────────────────────────
    store = AttachmentStore.from_settings(app_settings)
    app.state.settings = app_settings
    app.state.engine = build_engine(app_settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.attachment_store = store
    app.state.contact_service = ContactService()
    app.state.template_service = TemplateService(store)
    app.state.ai_prompt_template_service = AIPromptTemplateService(store)
    app.state.auth_service = AuthService(store, app_settings)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(contacts.router)
    app.include_router(templates.router)
    app.include_router(ai_prompt_templates.router)
    app.include_router(users.router)
    app.include_router(health.router)

    # Stored attachments, read-only
    app.mount(
        app_settings.public_files_prefix,
        StaticFiles(directory=str(store.storage_root), check_dir=False),
        name="uploads",
    )

    return app


# uvicorn expects `app.main:app` to be importable
app = create_app()
