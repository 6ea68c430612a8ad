"""
Incident Responder - Main Application
=====================================

FastAPI application hosting the incident pipeline.

On startup the managed workload is started (failure is fatal), the
incident log is loaded, learned fixes are seeded and the health monitor
and orchestrator run as background tasks until shutdown.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from incident_responder.api.routes import router as api_router
from incident_responder.api.schemas import HealthSample, WorkloadStatus
from incident_responder.config import Settings, get_settings
from incident_responder.core.demo import run_demo
from incident_responder.core.diagnosis import get_diagnosis_source
from incident_responder.core.fix_cache import FixCache
from incident_responder.core.health_monitor import (
    HealthMonitor,
    HttpHealthProbe,
    HttpStatusClient,
)
from incident_responder.core.incident_store import IncidentStore
from incident_responder.core.orchestrator import Orchestrator
from incident_responder.core.remediation_executor import RemediationExecutor
from incident_responder.core.target_service import TargetService
from incident_responder.core.verification import VerificationLoop
from incident_responder.exceptions import WorkloadError
from incident_responder.utils.logging import get_logger, set_correlation_id, setup_logging

settings = get_settings()

setup_logging(
    service_name=settings.service_name,
    log_level=settings.log_level,
    json_output=settings.log_json
)

logger = get_logger(__name__)


def _in_process_probes(target: TargetService):
    """Probes that read the workload directly when it is not served over HTTP."""

    async def probe() -> HealthSample:
        return target.health()

    async def fetch_status() -> Optional[WorkloadStatus]:
        return target.snapshot()

    return probe, fetch_status


def build_pipeline(
    settings: Settings,
    target: TargetService,
    stop_event: asyncio.Event
) -> tuple[HealthMonitor, Orchestrator, list]:
    """
    Wire the monitor and orchestrator around one workload.

    Returns:
        The monitor, the orchestrator and the HTTP clients to close on shutdown
    """
    events: asyncio.Queue = asyncio.Queue(maxsize=settings.incident_queue_size)
    clients: list = []

    if target.serve_http:
        probe = HttpHealthProbe(settings.target_url, settings.probe_timeout_seconds)
        fetch_status = HttpStatusClient(settings.target_url, settings.probe_timeout_seconds)
        clients.extend([probe, fetch_status])
    else:
        probe, fetch_status = _in_process_probes(target)

    diagnosis_source = get_diagnosis_source(settings, stop_event)
    clients.append(diagnosis_source)

    store = IncidentStore(settings.memory_file)
    store.load()

    monitor = HealthMonitor(
        probe,
        events,
        stop_event,
        interval_seconds=settings.check_interval_seconds
    )

    orchestrator = Orchestrator(
        events=events,
        stop_event=stop_event,
        fetch_status=fetch_status,
        store=store,
        fix_cache=FixCache(store),
        diagnosis_source=diagnosis_source,
        executor=RemediationExecutor(
            target,
            known_good_config=settings.known_good_config,
            settle_seconds=settings.restart_settle_seconds,
            startup_grace_seconds=settings.startup_grace_seconds,
            stop_event=stop_event
        ),
        verifier=VerificationLoop(
            probe,
            interval_seconds=settings.verification_interval_seconds,
            stop_event=stop_event
        ),
        stabilization_seconds=settings.stabilization_seconds
    )

    return monitor, orchestrator, clients


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(
        f"Starting {settings.service_name} v{settings.service_version}",
        extra={"version": settings.service_version}
    )

    target = TargetService(
        host=settings.target_host,
        port=settings.target_port,
        serve_http=settings.target_serve_http,
        default_config=settings.known_good_config,
        restart_pause_seconds=settings.workload_restart_pause_seconds
    )
    await target.start()

    stop_event = asyncio.Event()
    monitor, orchestrator, clients = build_pipeline(settings, target, stop_event)

    app.state.target = target
    app.state.monitor = monitor
    app.state.orchestrator = orchestrator
    app.state.incident_store = orchestrator.store
    app.state.fix_cache = orchestrator.fix_cache

    tasks = [
        asyncio.create_task(monitor.run(), name="health-monitor"),
        asyncio.create_task(orchestrator.run(), name="orchestrator"),
    ]
    if settings.demo_mode:
        tasks.append(asyncio.create_task(run_demo(target, stop_event), name="demo"))

    logger.info(
        f"Incident responder ready, watching {target.url}",
        extra={"target": target.url, "learned_fixes": len(orchestrator.fix_cache)}
    )

    yield

    logger.info("Shutting down incident responder...")
    stop_event.set()
    await asyncio.gather(*tasks, return_exceptions=True)

    with contextlib.suppress(WorkloadError):
        await target.stop()

    for client in clients:
        await client.close()

    orchestrator.store.log_summary()


app = FastAPI(
    title="Incident Responder",
    description="Incident detection, remediation and learned fixes for a managed workload",
    version=settings.service_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Middleware to extract or generate correlation ID."""
    correlation_id = request.headers.get("X-Correlation-ID")
    if not correlation_id:
        correlation_id = str(uuid.uuid4())

    set_correlation_id(correlation_id)
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "message": str(exc) if settings.debug else "An error occurred"}
    )


@app.get("/health", tags=["health"])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version
    }


@app.get("/ready", tags=["health"])
async def readiness_check(request: Request):
    target = request.app.state.target
    orchestrator = request.app.state.orchestrator
    return {
        "status": "ready",
        "service": settings.service_name,
        "target_healthy": target.is_healthy(),
        "incidents_processed": orchestrator.incidents_processed,
        "current_incident": orchestrator.current_incident_id,
        "learned_fixes": len(orchestrator.fix_cache)
    }


app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("incident_responder.main:app", host=settings.host, port=settings.port, reload=settings.debug)
