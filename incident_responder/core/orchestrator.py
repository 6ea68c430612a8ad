"""
Incident Responder - Orchestrator
=================================

Consumes incident events and drives each incident through its lifecycle:

    detected -> analyzing -> fixing -> resolved | failed

For every event:
1. Record the incident
2. Classify it from a workload status snapshot
3. If a fix was learned for the class, apply it and verify; done if it holds
4. Otherwise ask the diagnosis source for a plan (rule-based fallback on error)
5. Apply the plan, let the workload stabilize, verify
6. Verified fixes are learned for the class

Events are handled strictly one at a time.
"""

import asyncio
from typing import Optional

from incident_responder.api.schemas import (
    DiagnosisPlan,
    DiagnosisRequest,
    Incident,
    IncidentEvent,
    Resolution,
)
from incident_responder.constants import IncidentStatus, Timing
from incident_responder.core.classifier import classify, initial_symptoms
from incident_responder.core.diagnosis import BaseDiagnosisSource, fallback_plan
from incident_responder.core.fix_cache import FixCache
from incident_responder.core.health_monitor import StatusSource
from incident_responder.core.incident_store import IncidentStore
from incident_responder.core.remediation_executor import RemediationExecutor
from incident_responder.core.verification import VerificationLoop
from incident_responder.exceptions import DiagnosisError, RemediationError
from incident_responder.utils.logging import get_logger, set_correlation_id
from incident_responder.utils.timing import get_or_stop, wait_or_stop

logger = get_logger(__name__)


class Orchestrator:
    """
    Single consumer of the incident event queue.

    Owns each Incident while processing it; the store only ever sees
    copies taken at each checkpoint.
    """

    def __init__(
        self,
        events: asyncio.Queue,
        stop_event: asyncio.Event,
        fetch_status: StatusSource,
        store: IncidentStore,
        fix_cache: FixCache,
        diagnosis_source: BaseDiagnosisSource,
        executor: RemediationExecutor,
        verifier: VerificationLoop,
        stabilization_seconds: float = Timing.STABILIZATION_SECONDS
    ):
        self._events = events
        self._stop = stop_event
        self._fetch_status = fetch_status
        self.store = store
        self.fix_cache = fix_cache
        self.diagnosis_source = diagnosis_source
        self.executor = executor
        self.verifier = verifier
        self.stabilization_seconds = stabilization_seconds

        self.incidents_processed = 0
        self.current_incident_id: Optional[str] = None

    async def run(self) -> None:
        """Consume events until the stop event is set."""
        logger.info("Orchestrator started")

        while True:
            event = await get_or_stop(self._events, self._stop)
            if event is None:
                break

            try:
                await self.process_event(event)
            except Exception as e:
                logger.exception(f"Failed to process incident event {event.event_id}: {e}")
            finally:
                self.current_incident_id = None
                set_correlation_id(None)

        logger.info("Orchestrator stopped")

    async def process_event(self, event: IncidentEvent) -> Incident:
        """Handle one incident end to end and return its final record."""
        incident = Incident(
            detected_at=event.detected_at,
            symptoms=initial_symptoms(event.sample),
        )
        self.current_incident_id = incident.id
        set_correlation_id(incident.id)

        self.store.save_incident(incident)

        status = await self._fetch_status()
        incident.incident_class, incident.symptoms = classify(status, incident.symptoms)
        if status is not None:
            incident.logs = list(status.recent_logs)

        logger.warning(
            f"Incident detected: {incident.incident_class.value}",
            extra={
                "incident_id": incident.id,
                "incident_class": incident.incident_class.value,
                "symptoms": incident.symptoms
            }
        )

        cached = self.fix_cache.lookup(incident.incident_class)
        if cached is not None:
            if await self._try_cached_fix(incident, cached):
                self.incidents_processed += 1
                return incident
            logger.info("Falling back to diagnosis", extra={"incident_id": incident.id})

        await self._diagnose_and_fix(incident)
        self.incidents_processed += 1
        return incident

    async def _try_cached_fix(self, incident: Incident, cached: Resolution) -> bool:
        logger.info("Found learned fix, applying without diagnosis call")
        incident.used_cached_fix = True

        try:
            await self.executor.apply_cached_fix(incident, cached)
        except RemediationError as e:
            logger.warning(f"Cached fix failed: {e}")
            return False

        if not await self.verifier.run():
            logger.warning("Service still unhealthy after cached fix")
            return False

        incident.advance(IncidentStatus.RESOLVED)
        incident.resolution = cached
        self.store.save_incident(incident)

        logger.info(
            f"Incident resolved using cached fix in {self._elapsed(incident):.1f}s",
            extra={"incident_id": incident.id, "used_cached_fix": True}
        )
        return True

    async def _diagnose_and_fix(self, incident: Incident) -> None:
        incident.advance(IncidentStatus.ANALYZING)
        self.store.save_incident(incident)

        plan = await self._get_plan(incident)
        incident.diagnosis = plan.diagnosis

        incident.advance(IncidentStatus.FIXING)
        self.store.save_incident(incident)

        try:
            resolution = await self.executor.execute_fix(incident, plan)
        except RemediationError as e:
            incident.advance(IncidentStatus.FAILED)
            self.store.save_incident(incident)
            logger.error(
                f"Incident failed, fix could not be applied: {e}",
                extra={"incident_id": incident.id}
            )
            return

        verified = (
            await wait_or_stop(self._stop, self.stabilization_seconds)
            and await self.verifier.run()
        )

        if not verified:
            incident.advance(IncidentStatus.FAILED)
            self.store.save_incident(incident)
            logger.error(
                "Incident not resolved, service still unhealthy after fix attempt",
                extra={"incident_id": incident.id}
            )
            return

        incident.advance(IncidentStatus.RESOLVED)
        incident.resolution = resolution
        self.store.save_incident(incident)
        self.fix_cache.update(incident.incident_class, resolution)

        logger.info(
            f"Incident resolved in {self._elapsed(incident):.1f}s",
            extra={"incident_id": incident.id, "fix_kind": resolution.fix_kind.value}
        )

    async def _get_plan(self, incident: Incident) -> DiagnosisPlan:
        """Ask the diagnosis source; any failure yields the rule-based plan."""
        request = DiagnosisRequest(
            incident_class=incident.incident_class,
            symptoms=incident.symptoms,
            logs=incident.logs,
            detected_at=incident.detected_at,
        )

        try:
            return await self.diagnosis_source.diagnose(request)
        except DiagnosisError as e:
            logger.warning(f"Diagnosis failed, falling back to rule-based plan: {e}")
        except Exception as e:
            logger.warning(
                f"Diagnosis source error, falling back to rule-based plan: {e}",
                exc_info=True
            )

        return fallback_plan(incident.incident_class)

    @staticmethod
    def _elapsed(incident: Incident) -> float:
        end = incident.resolved_at or incident.detected_at
        return (end - incident.detected_at).total_seconds()
