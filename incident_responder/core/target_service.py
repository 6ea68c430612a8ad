"""
Incident Responder - Target Service
===================================

The managed workload: a small HTTP service whose health the responder
watches and whose lifecycle and configuration the remediation executor
controls.

State (running flag, health flag, configuration map, recent error logs)
is owned by one ``TargetService`` object. Status queries take the state
lock shared; lifecycle changes, configuration changes and incident
triggers take it exclusively. Start and stop are additionally serialized
so two restarts can never interleave.

Endpoints served while running:
- GET  /health            health sample, 503 when unhealthy
- GET  /status            running, healthy, config, recent_logs
- GET  /api/data          sample business endpoint
- GET|POST /trigger-incident?type=crash|config|resource|dependency
"""

import asyncio
import contextlib
import socket
from collections import deque
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from incident_responder.api.schemas import HealthSample, WorkloadStatus
from incident_responder.constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    INVALID_DATABASE_URL,
    INVALID_TIMEOUT,
    MAX_WORKLOAD_LOGS,
    UNREACHABLE_DATABASE_URL,
    IncidentClass,
    Timing,
)
from incident_responder.exceptions import WorkloadError
from incident_responder.utils.locks import RWLock
from incident_responder.utils.logging import get_logger

logger = get_logger(__name__)

# Accepted ?type= values for /trigger-incident
TRIGGER_ALIASES = {
    "crash": IncidentClass.SERVICE_DOWN,
    "config": IncidentClass.CONFIG_ERROR,
    "resource": IncidentClass.RESOURCE_EXHAUSTION,
    "dependency": IncidentClass.DEPENDENCY_FAILURE,
}
for _cls in IncidentClass:
    TRIGGER_ALIASES[_cls.value] = _cls
    TRIGGER_ALIASES[_cls.name] = _cls


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the host app."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class TargetService:
    """
    A service that can experience incidents.

    With ``serve_http`` off the service runs purely in memory: start and
    stop flip the running flag and the probes call ``health()`` and
    ``snapshot()`` directly.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8080,
        serve_http: bool = True,
        default_config: Optional[dict[str, str]] = None,
        restart_pause_seconds: float = Timing.WORKLOAD_RESTART_PAUSE_SECONDS,
        startup_timeout_seconds: float = 5.0
    ):
        self.host = host
        self.port = port
        self.serve_http = serve_http
        self.restart_pause_seconds = restart_pause_seconds
        self.startup_timeout_seconds = startup_timeout_seconds

        self._state_lock = RWLock()
        self._lifecycle_lock = asyncio.Lock()

        self._running = False
        self._healthy = True
        self._config: dict[str, str] = dict(default_config or {
            "database_url": DEFAULT_DATABASE_URL,
            "timeout": DEFAULT_TIMEOUT,
            "max_retries": DEFAULT_MAX_RETRIES,
        })
        self._logs: deque[str] = deque(maxlen=MAX_WORKLOAD_LOGS)

        self._server: Optional[_EmbeddedServer] = None
        self._server_task: Optional[asyncio.Task] = None

        self.app = create_target_app(self)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start the service and mark it healthy.

        Raises:
            WorkloadError: if already running or the HTTP server cannot start
        """
        async with self._lifecycle_lock:
            with self._state_lock.read():
                if self._running:
                    raise WorkloadError("service already running")

            if self.serve_http:
                await self._start_server()

            with self._state_lock.write():
                self._running = True
                self._healthy = True

        logger.info(f"Target service started on port {self.port}", extra={"port": self.port})

    async def stop(self) -> None:
        """
        Stop the service; it reports unhealthy until started again.

        Raises:
            WorkloadError: if the service is not running
        """
        async with self._lifecycle_lock:
            with self._state_lock.write():
                if not self._running:
                    raise WorkloadError("service not running")
                self._running = False
                self._healthy = False

            if self.serve_http:
                await self._stop_server()

        logger.info("Target service stopped")

    async def restart(self) -> None:
        """Stop (if running), pause, start."""
        logger.info("Target service restarting...")

        with contextlib.suppress(WorkloadError):
            await self.stop()

        await asyncio.sleep(self.restart_pause_seconds)
        await self.start()

    async def _start_server(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise WorkloadError(f"cannot bind {self.host}:{self.port}: {e}") from e

        config = uvicorn.Config(
            self.app,
            log_level="warning",
            lifespan="off",
            access_log=False,
        )
        server = _EmbeddedServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout_seconds
        while not server.started:
            if task.done() or loop.time() > deadline:
                server.should_exit = True
                sock.close()
                raise WorkloadError(f"HTTP server did not start on port {self.port}")
            await asyncio.sleep(0.05)

        self._server = server
        self._server_task = task

    async def _stop_server(self) -> None:
        server, task = self._server, self._server_task
        self._server = None
        self._server_task = None
        if server is None or task is None:
            return

        server.should_exit = True
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.startup_timeout_seconds)
        except asyncio.TimeoutError:
            server.force_exit = True
            await task

    # -------------------------------------------------------------------------
    # State queries (shared lock)
    # -------------------------------------------------------------------------

    def is_running(self) -> bool:
        with self._state_lock.read():
            return self._running

    def is_healthy(self) -> bool:
        with self._state_lock.read():
            return self._healthy and self._running

    def get_config(self) -> dict[str, str]:
        with self._state_lock.read():
            return dict(self._config)

    def get_logs(self) -> list[str]:
        with self._state_lock.read():
            return list(self._logs)

    def health(self) -> HealthSample:
        """Current health as a sample."""
        with self._state_lock.read():
            healthy = self._healthy and self._running
        return HealthSample(
            healthy=healthy,
            message="Service operational" if healthy else "Service unhealthy",
            status_code=200 if healthy else 503,
        )

    def snapshot(self) -> WorkloadStatus:
        """Typed status snapshot for classification."""
        with self._state_lock.read():
            return WorkloadStatus(
                running=self._running,
                healthy=self._healthy,
                config=dict(self._config),
                recent_logs=list(self._logs),
            )

    # -------------------------------------------------------------------------
    # Mutations (exclusive lock)
    # -------------------------------------------------------------------------

    def set_config(self, key: str, value: str) -> None:
        with self._state_lock.write():
            self._config[key] = value
        logger.info(f"Config {key} set", extra={"key": key, "value": value})

    def add_log(self, message: str) -> None:
        with self._state_lock.write():
            self._append_log(message)

    def _append_log(self, message: str) -> None:
        stamp = datetime.now(timezone.utc).strftime("%H:%M:%S")
        self._logs.append(f"[{stamp}] {message}")

    def trigger_incident(self, kind: str) -> IncidentClass:
        """
        Simulate an incident of the given kind.

        Raises:
            ValueError: if ``kind`` is not a known incident type
        """
        incident_class = TRIGGER_ALIASES.get(kind)
        if incident_class is None:
            raise ValueError(f"Unknown incident type: {kind}")

        logger.warning(f"Triggering incident: {incident_class.value}")

        with self._state_lock.write():
            self._healthy = False
            if incident_class == IncidentClass.SERVICE_DOWN:
                self._append_log("Service crashed - simulated failure")
            elif incident_class == IncidentClass.CONFIG_ERROR:
                self._config["database_url"] = INVALID_DATABASE_URL
                self._config["timeout"] = INVALID_TIMEOUT
                self._append_log("Configuration corrupted - invalid values detected")
            elif incident_class == IncidentClass.RESOURCE_EXHAUSTION:
                self._append_log("Resource exhaustion - port blocked or memory full")
            elif incident_class == IncidentClass.DEPENDENCY_FAILURE:
                self._config["database_url"] = UNREACHABLE_DATABASE_URL
                self._append_log("Database connection failed - unable to reach host")

        return incident_class


def create_target_app(target: TargetService) -> FastAPI:
    """Build the HTTP surface of a target service."""
    app = FastAPI(
        title="Incident Responder - Target Service",
        description="Managed workload watched by the incident responder",
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/health")
    async def health():
        sample = target.health()
        return JSONResponse(
            status_code=sample.status_code,
            content=sample.model_dump(mode="json"),
        )

    @app.get("/status")
    async def status():
        return target.snapshot().model_dump(mode="json")

    @app.get("/api/data")
    async def data():
        if not target.is_healthy():
            return JSONResponse(status_code=503, content={"error": "service unavailable"})
        return {
            "status": "ok",
            "data": "Sample API response",
            "time": datetime.now(timezone.utc).isoformat(),
        }

    @app.api_route("/trigger-incident", methods=["GET", "POST"])
    async def trigger_incident(incident_type: str = Query("", alias="type")):
        try:
            incident_class = target.trigger_incident(incident_type)
        except ValueError:
            return PlainTextResponse(
                status_code=400,
                content=(
                    f"Unknown incident type: {incident_type}\n"
                    "Valid types: crash, config, resource, dependency\n"
                ),
            )
        return PlainTextResponse(f"Incident triggered: {incident_class.value}\n")

    return app
