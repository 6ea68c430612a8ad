"""
Incident Responder - Demo Scenario
==================================

Scripted run that triggers one incident of each common kind, with the
second crash exercising the learned fix.
"""

import asyncio
import contextlib

from incident_responder.core.target_service import TargetService
from incident_responder.exceptions import WorkloadError
from incident_responder.utils.logging import get_logger
from incident_responder.utils.timing import wait_or_stop

logger = get_logger(__name__)

# (label, trigger type)
DEMO_SCENARIO = (
    ("Service Crash", "crash"),
    ("Config Error", "config"),
    ("Service Crash (cached)", "crash"),
    ("Dependency Failure", "dependency"),
)


async def run_demo(
    target: TargetService,
    stop_event: asyncio.Event,
    wait_seconds: float = 15.0,
    initial_delay_seconds: float = 5.0,
    scenario: tuple[tuple[str, str], ...] = DEMO_SCENARIO
) -> int:
    """
    Play the scenario against the target. Each step starts from a freshly
    restarted workload.

    Returns:
        Number of incidents triggered before finishing or being stopped
    """
    logger.info(f"Starting automated demo in {initial_delay_seconds:.0f} seconds...")
    if not await wait_or_stop(stop_event, initial_delay_seconds):
        return 0

    triggered = 0
    for i, (label, kind) in enumerate(scenario, 1):
        logger.info(f"Demo ({i}/{len(scenario)}) triggering: {label}")

        with contextlib.suppress(WorkloadError):
            await target.restart()

        target.trigger_incident(kind)
        triggered += 1

        logger.info(f"Waiting {wait_seconds:.0f}s for resolution...")
        if not await wait_or_stop(stop_event, wait_seconds):
            logger.info("Demo stopped")
            return triggered

    logger.info("Demo complete")
    return triggered
