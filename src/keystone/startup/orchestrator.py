"""Keystone Bootstrap Sequencer.

Runs the startup steps strictly in order: validate configuration, construct
the application, register security middleware, register the request pipeline,
bind the listener. Any failure moves the sequencer to ``FAILED`` and is raised
to the caller; nothing is retried and no listener is opened before the
configuration is known to be valid.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum
import logging
import socket

from fastapi import APIRouter, Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from keystone import __version__
from keystone.api.health import router as health_router
from keystone.api.validation import lenient_body_models
from keystone.auth.access import (
    AccessControl,
    AccessGuard,
    public_endpoints,
    public_paths,
)
from keystone.core.exceptions import (
    ConfigurationError,
    StartupError,
    http_exception_handler,
    request_validation_exception_handler,
)
from keystone.middleware.rate_limiting import setup_rate_limiting
from keystone.middleware.security_headers import setup_security_headers
from keystone.startup.config_schema import KeystoneConfig, load_config

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
LISTEN_BACKLOG = 2048


class BootstrapState(StrEnum):
    """Bootstrap sequencer states."""

    UNINITIALIZED = "uninitialized"
    CONFIG_VALIDATED = "config_validated"
    SECURITY_REGISTERED = "security_registered"
    PIPELINE_REGISTERED = "pipeline_registered"
    LISTENING = "listening"
    FAILED = "failed"


_NEXT_STATE = {
    BootstrapState.UNINITIALIZED: BootstrapState.CONFIG_VALIDATED,
    BootstrapState.CONFIG_VALIDATED: BootstrapState.SECURITY_REGISTERED,
    BootstrapState.SECURITY_REGISTERED: BootstrapState.PIPELINE_REGISTERED,
    BootstrapState.PIPELINE_REGISTERED: BootstrapState.LISTENING,
}


def normalize_prefix(api_prefix: str) -> str:
    """Turn ``api/v1`` style prefixes into router prefixes (``/api/v1``)."""
    stripped = api_prefix.strip("/")
    return f"/{stripped}" if stripped else ""


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on ``(host, port)``.

    Raises:
        OSError: if the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def listener_url(sock: socket.socket) -> str:
    """Externally reachable URL for a bound socket."""
    host, port = sock.getsockname()[:2]
    if host == "0.0.0.0":  # noqa: S104
        host = "127.0.0.1"
    elif host == "::":
        host = "[::1]"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


class BootstrapSequencer:
    """Orchestrates the ordered application startup.

    The sequencer owns the validated configuration and hands it read-only to
    every middleware factory and route registrant.
    """

    def __init__(
        self,
        snapshot: Mapping[str, str],
        *,
        routers: Sequence[APIRouter] | None = None,
        access_guard: AccessGuard | None = None,
        rate_limit_storage_uri: str | None = None,
    ) -> None:
        """Initialize the bootstrap sequencer.

        Args:
            snapshot: Environment snapshot captured at process start
            routers: Routers to mount under the global prefix (health only by default)
            access_guard: Guard consulted for every non-public route
            rate_limit_storage_uri: ``limits`` storage URI for rate-limit counters
        """
        self.snapshot = snapshot
        self.routers = list(routers) if routers is not None else [health_router]
        self.access_guard = access_guard
        self.rate_limit_storage_uri = rate_limit_storage_uri

        self.state = BootstrapState.UNINITIALIZED
        self.config: KeystoneConfig | None = None
        self.app: FastAPI | None = None
        self.limiter: Limiter | None = None
        self.access_control: AccessControl | None = None
        self.socket: socket.socket | None = None
        self.server: uvicorn.Server | None = None
        self.url: str | None = None

    def _require(self, state: BootstrapState, action: str) -> None:
        if self.state != state:
            msg = f"Cannot {action} while {self.state.value}; expected {state.value}"
            raise StartupError(msg, phase=self.state.value)

    def _advance(self, target: BootstrapState) -> None:
        if _NEXT_STATE.get(self.state) != target:
            msg = f"Invalid transition {self.state.value} -> {target.value}"
            raise StartupError(msg, phase=self.state.value)
        logger.debug("Bootstrap state: %s -> %s", self.state.value, target.value)
        self.state = target

    def _configured(self) -> KeystoneConfig:
        if self.config is None:
            msg = "No validated configuration"
            raise StartupError(msg, phase=self.state.value)
        return self.config

    def _failure(self, phase: str, error: Exception) -> StartupError:
        self.state = BootstrapState.FAILED
        logger.error("Startup failed during %s: %s", phase, error)
        if isinstance(error, StartupError):
            return error
        return StartupError(
            f"{phase} failed: {error}", phase=phase, details={"error": repr(error)}
        )

    async def configure(self) -> FastAPI:
        """Validate configuration and build the application (steps 1-7).

        Raises:
            ConfigurationError: the environment failed validation
            StartupError: application construction or registration failed
        """
        self._require(BootstrapState.UNINITIALIZED, "configure")

        try:
            config = load_config(self.snapshot)
        except ConfigurationError:
            self.state = BootstrapState.FAILED
            raise
        self.config = config
        self._advance(BootstrapState.CONFIG_VALIDATED)

        try:
            app = self._create_app(config)
            self._register_security(app, config)
        except Exception as e:  # noqa: BLE001 - re-raised as StartupError
            raise self._failure("security registration", e) from e
        self._advance(BootstrapState.SECURITY_REGISTERED)

        try:
            self._mount_routers(app, config)
            self._enable_cors(app, config)
            self._register_validation(app)
        except Exception as e:  # noqa: BLE001 - re-raised as StartupError
            raise self._failure("pipeline registration", e) from e
        self._advance(BootstrapState.PIPELINE_REGISTERED)

        self.app = app
        return app

    async def listen(self) -> str:
        """Bind the listener (step 8) and report where the app is reachable.

        Returns:
            The externally reachable URL
        """
        self._require(BootstrapState.PIPELINE_REGISTERED, "listen")
        config = self._configured()

        try:
            self.socket = bind_socket(config.app.host, config.app.port)
        except OSError as e:
            raise self._failure("listen", e) from e
        self._advance(BootstrapState.LISTENING)

        self.url = listener_url(self.socket)
        logger.info("Application is running on: %s", self.url)
        logger.info("Environment: %s", config.app.node_env.value)
        return self.url

    async def serve(self) -> None:
        """Serve requests on the bound socket until shutdown."""
        self._require(BootstrapState.LISTENING, "serve")
        if self.app is None or self.socket is None:
            msg = "Cannot serve without an application and a bound socket"
            raise StartupError(msg, phase=self.state.value)

        server_config = uvicorn.Config(
            self.app,
            log_config=None,
            proxy_headers=True,
            forwarded_allow_ips="*",
        )
        self.server = uvicorn.Server(server_config)
        try:
            await self.server.serve(sockets=[self.socket])
        finally:
            self.close()

    async def run(self) -> None:
        """Run the whole startup sequence and serve."""
        await self.configure()
        await self.listen()
        await self.serve()

    def close(self) -> None:
        """Release the listener socket."""
        if self.socket is not None:
            self.socket.close()
            self.socket = None

    def _create_app(self, config: KeystoneConfig) -> FastAPI:
        prefix = normalize_prefix(config.app.api_prefix)
        app = FastAPI(
            title="Keystone",
            version=__version__,
            openapi_url=f"{prefix}/openapi.json",
            docs_url=None,
            redoc_url=None,
        )
        app.state.config = config
        return app

    def _register_security(self, app: FastAPI, config: KeystoneConfig) -> None:
        # Starlette runs middleware in reverse order of registration, so the
        # CORS layer added later wraps these two.
        setup_security_headers(app)
        self.limiter = setup_rate_limiting(
            app, config.app.rate_limit, storage_uri=self.rate_limit_storage_uri
        )

    def _mount_routers(self, app: FastAPI, config: KeystoneConfig) -> None:
        prefix = normalize_prefix(config.app.api_prefix)
        allowed = frozenset().union(
            *(public_paths(router, prefix) for router in self.routers)
        )
        endpoints = frozenset().union(
            *(public_endpoints(router) for router in self.routers)
        )
        self.access_control = AccessControl(endpoints, guard=self.access_guard)

        for router in self.routers:
            app.include_router(
                router, prefix=prefix, dependencies=[Depends(self.access_control)]
            )
        logger.info("Routes mounted under '%s' (public: %s)", prefix, sorted(allowed))

    def _enable_cors(self, app: FastAPI, config: KeystoneConfig) -> None:
        cors = config.app.cors
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_credentials=cors.credentials,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
        )
        logger.info(
            "CORS enabled for %s (credentials: %s)",
            cors.allow_origins,
            cors.credentials,
        )

    def _register_validation(self, app: FastAPI) -> None:
        violations = lenient_body_models(self.routers)
        if violations:
            msg = (
                "Request bodies must reject unknown fields (use RequestModel): "
                + "; ".join(violations)
            )
            raise StartupError(
                msg,
                phase="pipeline registration",
                details={"models": violations},
            )

        app.add_exception_handler(
            RequestValidationError,
            request_validation_exception_handler,  # type: ignore[arg-type]
        )
        app.add_exception_handler(
            StarletteHTTPException,
            http_exception_handler,  # type: ignore[arg-type]
        )
