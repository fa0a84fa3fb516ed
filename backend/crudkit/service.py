"""
crudkit — Service Bootstrap
=============================

What:  Turns a ServiceConfig into a running HTTP service: middleware chain,
       health probes, resource routers, centralized error handling, database
       connection and graceful shutdown.
How:   create_app() assembles a FastAPI app; serve() connects the database,
       runs uvicorn programmatically and owns SIGINT/SIGTERM handling so the
       shutdown deadline is enforced here rather than inside uvicorn.
Who:   Each service entry point (see crudkit.main) builds one ServiceBootstrap.

Service Lifecycle:
    run()
     └── serve()
          ├── startup()           logging, database connect (SystemExit(1) on failure)
          ├── uvicorn.Server      accepts connections
          ├── SIGINT / SIGTERM    → stop event set
          └── shutdown()
               ├── stop accepting, drain in-flight requests
               ├── drained within grace period → exit code 0
               ├── deadline passed             → forced, exit code 1
               └── dispose database

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │  Middleware: RequestID → Logging → GZip → BodyLimit │
    │              → CORS → SecurityHeaders               │
    │              → UnhandledError → custom              │
    │  Routes:     /health /healthz /ready                │
    │              <prefix>/<resource>  (auth-gated)      │
    │  Handlers:   CrudKitError → status                  │
    │              RequestValidationError → 400           │
    │              HTTPException (404/405) → status       │
    │              DB connection failure → 503            │
    │              Exception → 500                        │
    └─────────────────────────────────────────────────────┘
"""

import asyncio
import contextlib
import logging
import signal
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Tuple, Type

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.exc import DBAPIError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from crudkit import __version__
from crudkit.auth import optional_auth
from crudkit.auth import require_auth as require_auth_dependency
from crudkit.config import Settings, settings as default_settings
from crudkit.database import Database
from crudkit.exceptions import CrudKitError, ServiceUnavailableError
from crudkit.middleware import (
    BodySizeLimitMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    UnhandledErrorMiddleware,
    request_id_var,
)
from crudkit.responses import fail
from crudkit.routes.health import build_health_router

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


# ══════════════════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class MountedRouter:
    prefix: str
    router: APIRouter
    require_auth: bool = True


@dataclass
class ServiceConfig:
    """
    Declarative description of one service.

    Attributes:
        service_name:          Reported by health probes and log lines
        port / host:           Listen address (None → settings)
        routers:               Routers mounted at startup
        requires_database:     Connect before serving; fail startup otherwise
        requires_auth:         Gate routers behind the Bearer token check
        middlewares:           Extra (middleware_class, kwargs) pairs, innermost
        shutdown_grace_period: Seconds to drain on shutdown (None → settings)
    """
    service_name: str = "unknown-service"
    port: Optional[int] = None
    host: Optional[str] = None
    routers: List[MountedRouter] = field(default_factory=list)
    requires_database: bool = True
    requires_auth: bool = True
    middlewares: List[Tuple[Type[Any], Dict[str, Any]]] = field(default_factory=list)
    shutdown_grace_period: Optional[float] = None


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════


def setup_logging(config: Settings = default_settings) -> None:
    """
    Configure root logging for the process.

    Format: 2024-01-15T12:00:00 [INFO] crudkit.access: GET /api/customers 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, config.effective_log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party loggers are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def _is_connection_failure(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or bool(exc.connection_invalidated)


def unexpected_error_handler(
    config: Settings = default_settings,
) -> Callable[[Request, Exception], Awaitable[Response]]:
    """Build the 500 responder shared by UnhandledErrorMiddleware and the fallback handler."""

    async def handle_unexpected_error(request: Request, exc: Exception) -> Response:
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=exc)
        message = "Internal Server Error" if config.is_production else (str(exc) or "Internal Server Error")
        return fail(500, message)

    return handle_unexpected_error


def register_exception_handlers(app: FastAPI, config: Settings = default_settings) -> None:
    """
    Map every error that escapes a route to a failure envelope.

    Handler hierarchy:
        CrudKitError            → its own status (401, 413, 503, ...)
        RequestValidationError  → 400 (malformed JSON body, bad parameter)
        HTTPException           → its status (unmatched route → 404 "Not Found")
        DBAPIError (connection) → 503
        Exception (fallback)    → 500, stack trace logged; message hidden in production
    """

    @app.exception_handler(CrudKitError)
    async def handle_crudkit_error(request: Request, exc: CrudKitError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return fail(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        message = _validation_message(exc)
        logger.warning("[%s] Request validation failed: %s", rid, message)
        return fail(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return fail(exc.status_code, message, headers=getattr(exc, "headers", None))

    handle_unexpected_error = unexpected_error_handler(config)

    @app.exception_handler(DBAPIError)
    async def handle_database_error(request: Request, exc: DBAPIError):
        rid = request_id_var.get("")
        if _is_connection_failure(exc):
            logger.error("[%s] Database unavailable: %s", rid, str(exc.orig))
            unavailable = ServiceUnavailableError()
            return fail(unavailable.status_code, unavailable.message)
        return await handle_unexpected_error(request, exc)

    # Errors raised by the middlewares outside UnhandledErrorMiddleware
    app.add_exception_handler(Exception, handle_unexpected_error)


# ══════════════════════════════════════════════════════════════════════════
# Server
# ══════════════════════════════════════════════════════════════════════════


class ManagedServer(uvicorn.Server):
    """uvicorn.Server that leaves signal handling to ServiceBootstrap."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


# ══════════════════════════════════════════════════════════════════════════
# Bootstrap
# ══════════════════════════════════════════════════════════════════════════


class ServiceBootstrap:
    """
    Builds and runs one service.

    Example:
        bootstrap = ServiceBootstrap(ServiceConfig(service_name="customers-service"))
        bootstrap.add_routes("/api", CustomersController(database).router("customers"))
        bootstrap.run()
    """

    def __init__(
        self,
        config: ServiceConfig,
        database: Optional[Database] = None,
        settings: Settings = default_settings,
    ):
        self.config = config
        self.settings = settings
        self.database = database or Database.from_settings(settings)
        self.port = config.port or settings.backend_port
        self.host = config.host or settings.backend_host
        self.grace_period = config.shutdown_grace_period or settings.shutdown_grace_period
        self._routers: List[MountedRouter] = list(config.routers)
        self._app: Optional[FastAPI] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ── Routes ────────────────────────────────────────────────────────────

    def add_routes(self, prefix: str, router: APIRouter, require_auth: bool = True) -> None:
        """Mount a router; gated by the Bearer check when the service requires auth."""
        mounted = MountedRouter(prefix=prefix, router=router, require_auth=require_auth)
        self._routers.append(mounted)
        if self._app is not None:
            self._mount(self._app, mounted)

    def add_public_routes(self, prefix: str, router: APIRouter) -> None:
        self.add_routes(prefix, router, require_auth=False)

    def _mount(self, app: FastAPI, mounted: MountedRouter) -> None:
        gated = mounted.require_auth and self.config.requires_auth
        # Public routes still pick up the principal when a valid token is sent
        dependencies = [Depends(require_auth_dependency if gated else optional_auth)]
        app.include_router(mounted.router, prefix=mounted.prefix.rstrip("/"), dependencies=dependencies)
        logger.debug(
            "Mounted %s routes at %s (%s)",
            self.config.service_name,
            mounted.prefix or "/",
            "authenticated" if gated else "public",
        )

    # ── App ───────────────────────────────────────────────────────────────

    @property
    def app(self) -> FastAPI:
        return self.create_app()

    def create_app(self) -> FastAPI:
        """Assemble the FastAPI application (built once, then cached)."""
        if self._app is not None:
            return self._app

        app = FastAPI(
            title=self.config.service_name,
            version=__version__,
            docs_url=None if self.settings.is_production else "/docs",
            redoc_url=None,
            lifespan=self._lifespan,
        )
        app.state.service_name = self.config.service_name
        app.state.database = self.database

        # Last added runs first; see crudkit.middleware for the resulting chain
        for middleware_class, options in reversed(self.config.middlewares):
            app.add_middleware(middleware_class, **options)
        app.add_middleware(UnhandledErrorMiddleware, handler=unexpected_error_handler(self.settings))
        app.add_middleware(SecurityHeadersMiddleware, strict=self.settings.is_production)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        )
        app.add_middleware(BodySizeLimitMiddleware, max_body_size=self.settings.max_body_size)
        app.add_middleware(GZipMiddleware, minimum_size=500)
        if not self.settings.is_test:
            app.add_middleware(RequestLoggingMiddleware)
        app.add_middleware(RequestIDMiddleware)

        register_exception_handlers(app, self.settings)

        app.include_router(build_health_router(self.config.service_name, self.settings.environment))
        for mounted in self._routers:
            self._mount(app, mounted)

        self._app = app
        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncGenerator[None, None]:
        if self.config.requires_database:
            await self.database.connect()
        logger.info("%s ready (%s)", self.config.service_name, self.settings.environment)
        yield
        await self.database.dispose()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def startup(self) -> None:
        """
        Prepare the process to serve.

        Raises:
            SystemExit(1): the database is required but unconfigured or unreachable
        """
        setup_logging(self.settings)
        logger.info("=" * 60)
        logger.info("%s starting (%s)", self.config.service_name, self.settings.environment)

        if not self.config.requires_database:
            return
        try:
            await self.database.connect()
        except ServiceUnavailableError as e:
            logger.error(
                "%s startup error: %s (%s)",
                self.config.service_name,
                e.message,
                e.reason,
            )
            raise SystemExit(1) from e

    def request_stop(self, sig: Optional[signal.Signals] = None) -> None:
        """Ask a running serve() to shut down (what SIGINT/SIGTERM do)."""
        logger.info(
            "%s received %s, shutting down gracefully...",
            self.config.service_name,
            sig.name if sig is not None else "stop request",
        )
        if self._stop_event is not None:
            self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_stop, sig)
            except NotImplementedError:
                # No loop signal support (Windows)
                signal.signal(sig, lambda s, _f: loop.call_soon_threadsafe(self.request_stop, signal.Signals(s)))

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)

    async def serve(self) -> int:
        """Run until stopped. Returns the process exit code."""
        await self.startup()
        app = self.create_app()

        server = ManagedServer(
            uvicorn.Config(
                app,
                host=self.host,
                port=self.port,
                log_config=None,
                access_log=False,
                lifespan="on",
            )
        )
        self._stop_event = asyncio.Event()
        self._install_signal_handlers()
        logger.info("%s listening on port %d (%s)", self.config.service_name, self.port, self.settings.environment)

        serve_task = asyncio.create_task(server.serve(), name=f"{self.config.service_name}-http")
        stop_task = asyncio.create_task(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if serve_task in done:
                # uvicorn exited without a stop request (failed lifespan, bind error)
                stop_task.cancel()
                await self.database.dispose()
                serve_task.result()
                return 0 if server.started else 1
            return await self.shutdown(server, serve_task)
        finally:
            self._remove_signal_handlers()

    async def shutdown(self, server: uvicorn.Server, serve_task: "asyncio.Task[Any]") -> int:
        """
        Stop accepting connections and drain, bounded by the grace period.

        Returns:
            0 when in-flight requests finished in time, 1 when forced
        """
        exit_code = 0
        server.should_exit = True
        done, _ = await asyncio.wait({serve_task}, timeout=self.grace_period)
        if done:
            logger.info("%s HTTP server closed", self.config.service_name)
        else:
            logger.error(
                "%s forced shutdown after %.1fs grace period",
                self.config.service_name,
                self.grace_period,
            )
            server.force_exit = True
            serve_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await serve_task
            exit_code = 1

        await self.database.dispose()
        logger.info("%s shutdown complete", self.config.service_name)
        return exit_code

    def run(self) -> None:
        """Blocking entry point: serve, then exit the process with its code."""
        sys.exit(asyncio.run(self.serve()))
