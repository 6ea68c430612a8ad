"""
Incident Responder - Health Monitor
===================================

Samples workload health on a fixed interval and emits an incident event
on every healthy -> unhealthy transition.

Detection is edge-triggered: a run of consecutive unhealthy samples
produces exactly one event, and recovery is only logged. Confirming that
an incident is resolved belongs to the verification loop, not to the
monitor.

Probe failures (connection refused, timeouts, unparseable payloads) are
unhealthy samples; nothing a probe does can end the monitoring loop.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from incident_responder.api.schemas import HealthSample, IncidentEvent, WorkloadStatus
from incident_responder.constants import HTTP_OK_CODES, Timing
from incident_responder.utils.http_client import ServiceClient, ServiceClientConfig
from incident_responder.utils.logging import get_logger
from incident_responder.utils.timing import put_or_stop, wait_or_stop

logger = get_logger(__name__)

HealthProbe = Callable[[], Awaitable[HealthSample]]
StatusSource = Callable[[], Awaitable[Optional[WorkloadStatus]]]


class HttpHealthProbe:
    """
    Probes ``GET /health`` on the workload.

    Never raises: every failure is reported as an unhealthy sample with a
    descriptive message.

    Example:
        probe = HttpHealthProbe("http://localhost:8080")
        sample = await probe()
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = Timing.PROBE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._client = ServiceClient(
            base_url,
            ServiceClientConfig(timeout_seconds=timeout_seconds),
            transport=transport,
        )

    async def __call__(self) -> HealthSample:
        try:
            response = await self._client.get("/health")
        except httpx.TimeoutException as e:
            return HealthSample(healthy=False, message=f"Health check timed out: {e}")
        except httpx.HTTPError as e:
            return HealthSample(healthy=False, message=f"Health check failed: {e}")

        try:
            reported = HealthSample.model_validate(response.json())
        except (ValueError, ValidationError):
            return HealthSample(
                healthy=False,
                message="Failed to parse health response",
                status_code=response.status_code,
            )

        return reported.model_copy(update={
            "healthy": reported.healthy and response.status_code in HTTP_OK_CODES,
            "status_code": response.status_code,
        })

    async def close(self) -> None:
        await self._client.close()


class HttpStatusClient:
    """Fetches the typed ``GET /status`` snapshot from the workload."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = Timing.PROBE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._client = ServiceClient(
            base_url,
            ServiceClientConfig(timeout_seconds=timeout_seconds),
            transport=transport,
        )

    async def __call__(self) -> Optional[WorkloadStatus]:
        """Return the snapshot, or None if the workload could not be queried."""
        try:
            response = await self._client.get("/status")
            response.raise_for_status()
            return WorkloadStatus.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning(f"Status snapshot unavailable: {e}")
            return None

    async def close(self) -> None:
        await self._client.close()


class HealthMonitor:
    """
    Timer-driven producer of incident events.

    Runs until the stop event is set. The stop event is honoured at the
    top of each iteration, during the interval wait, and while blocked on
    a full event queue.
    """

    def __init__(
        self,
        probe: HealthProbe,
        events: asyncio.Queue,
        stop_event: asyncio.Event,
        interval_seconds: float = Timing.CHECK_INTERVAL_SECONDS
    ):
        self._probe = probe
        self._events = events
        self._stop = stop_event
        self.interval_seconds = interval_seconds

        self._previous_healthy = True
        self.last_sample: Optional[HealthSample] = None
        self.events_emitted = 0

    @property
    def healthy(self) -> bool:
        """State of the two-state model after the latest sample."""
        return self._previous_healthy

    def observe(self, sample: HealthSample) -> Optional[IncidentEvent]:
        """
        Feed one sample through the two-state model.

        Returns:
            An IncidentEvent on a healthy -> unhealthy edge, otherwise None
        """
        event = None

        if self._previous_healthy and not sample.healthy:
            logger.warning(
                "Health check FAILED - incident detected",
                extra={"status_code": sample.status_code, "health_message": sample.message}
            )
            event = IncidentEvent(detected_at=sample.timestamp, sample=sample)
        elif not self._previous_healthy and sample.healthy:
            logger.info("Health check PASSED - service recovered")

        self._previous_healthy = sample.healthy
        self.last_sample = sample
        return event

    async def sample(self) -> HealthSample:
        """Run the probe once; any probe failure becomes an unhealthy sample."""
        try:
            return await self._probe()
        except Exception as e:
            return HealthSample(healthy=False, message=f"Health probe error: {e}")

    async def run(self) -> None:
        """Main loop: wait one interval, sample, maybe emit. The first sample lands one tick in."""
        logger.info(
            f"Health monitor started (interval: {self.interval_seconds}s)",
            extra={"interval_seconds": self.interval_seconds}
        )

        while not self._stop.is_set():
            if not await wait_or_stop(self._stop, self.interval_seconds):
                break

            event = self.observe(await self.sample())

            if event is not None:
                if not await put_or_stop(self._events, event, self._stop):
                    break
                self.events_emitted += 1

        logger.info("Health monitor stopped")
