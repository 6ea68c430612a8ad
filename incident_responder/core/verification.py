"""
Incident Responder - Verification Loop
======================================

Confirms a fix by probing the workload a fixed number of times.
"""

import asyncio
from typing import Optional

from incident_responder.constants import VERIFICATION_PROBES, Timing
from incident_responder.core.health_monitor import HealthProbe
from incident_responder.utils.logging import get_logger
from incident_responder.utils.timing import wait_or_stop

logger = get_logger(__name__)


class VerificationLoop:
    """
    Runs ``attempts`` sequential probes spaced by ``interval_seconds``.

    The first probe runs immediately. Passes only if every probe is
    healthy; the first unhealthy probe ends the loop, and so does a stop
    request while waiting between probes.
    """

    def __init__(
        self,
        probe: HealthProbe,
        interval_seconds: float = Timing.VERIFICATION_INTERVAL_SECONDS,
        stop_event: Optional[asyncio.Event] = None,
        attempts: int = VERIFICATION_PROBES
    ):
        self._probe = probe
        self.interval_seconds = interval_seconds
        self.attempts = attempts
        self._stop = stop_event
        self.probes_run = 0

    async def run(self) -> bool:
        logger.info("Verifying fix...")
        self.probes_run = 0

        for attempt in range(1, self.attempts + 1):
            if attempt > 1 and not await wait_or_stop(self._stop, self.interval_seconds):
                logger.info("Verification aborted by shutdown")
                return False

            try:
                sample = await self._probe()
                healthy = sample.healthy
            except Exception as e:
                logger.warning(f"Verification probe error: {e}")
                healthy = False
            self.probes_run += 1

            if not healthy:
                logger.warning(
                    f"Verification failed on attempt {attempt}/{self.attempts}",
                    extra={"attempt": attempt}
                )
                return False

            logger.info(f"Verification {attempt}/{self.attempts} passed")

        logger.info("Fix verified - service is healthy")
        return True
