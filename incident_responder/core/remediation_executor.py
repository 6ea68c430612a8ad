"""
Incident Responder - Remediation Executor
=========================================

Applies remediation plans to the managed workload.

Fix kinds:
- restart: stop (errors ignored), settle, start, grace period
- config:  restore every setting a step mentions to its known-good value,
           then restart
- code:    log the proposed change for human review, restart as fallback

Success means the actions completed; whether the incident is actually
resolved is decided afterwards by the verification loop.
"""

import asyncio
from typing import Optional, Sequence

from incident_responder.api.schemas import DiagnosisPlan, Incident, Resolution
from incident_responder.constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    FixKind,
    Timing,
)
from incident_responder.core.target_service import TargetService
from incident_responder.exceptions import (
    RemediationError,
    UnsupportedFixKindError,
    WorkloadError,
)
from incident_responder.utils.logging import get_logger
from incident_responder.utils.timing import wait_or_stop

logger = get_logger(__name__)

# Phrases in a config step that name each setting; checked in order
CONFIG_VOCABULARY: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("database_url", ("database_url", "database url", "dependency url")),
    ("timeout", ("timeout",)),
    ("max_retries", ("max_retries", "retry count", "retries")),
)


def settings_mentioned(step: str) -> list[str]:
    """Config keys a free-text step refers to."""
    lowered = step.lower()
    return [
        key for key, phrases in CONFIG_VOCABULARY
        if any(phrase in lowered for phrase in phrases)
    ]


class RemediationExecutor:
    """
    Executes fixes against a TargetService.

    Example:
        executor = RemediationExecutor(target)
        resolution = await executor.execute_fix(incident, plan)
    """

    def __init__(
        self,
        target: TargetService,
        known_good_config: Optional[dict[str, str]] = None,
        settle_seconds: float = Timing.RESTART_SETTLE_SECONDS,
        startup_grace_seconds: float = Timing.STARTUP_GRACE_SECONDS,
        stop_event: Optional[asyncio.Event] = None
    ):
        self.target = target
        self.known_good_config = dict(known_good_config or {
            "database_url": DEFAULT_DATABASE_URL,
            "timeout": DEFAULT_TIMEOUT,
            "max_retries": DEFAULT_MAX_RETRIES,
        })
        self.settle_seconds = settle_seconds
        self.startup_grace_seconds = startup_grace_seconds
        self._stop = stop_event

    async def execute_fix(self, incident: Incident, plan: DiagnosisPlan) -> Resolution:
        """
        Apply a diagnosed plan.

        Returns:
            A successful Resolution built from the plan

        Raises:
            RemediationError: if the fix could not be applied
        """
        logger.info(
            f"Applying {plan.fix_kind.value} fix for incident {incident.id}",
            extra={"incident_id": incident.id, "fix_kind": plan.fix_kind.value}
        )

        try:
            await self._dispatch(plan.fix_kind, plan.steps, plan.code)
        except RemediationError as e:
            logger.error(f"Fix failed: {e}", extra={"incident_id": incident.id})
            raise

        logger.info("Fix applied successfully", extra={"incident_id": incident.id})
        return Resolution.from_plan(plan, success=True)

    async def apply_cached_fix(self, incident: Incident, resolution: Resolution) -> None:
        """
        Re-apply a learned fix. Code fixes are never replayed, only the
        restart that accompanied them.

        Raises:
            RemediationError: if the fix could not be applied
        """
        logger.info(
            f"Applying cached {resolution.fix_kind.value} fix for incident {incident.id} "
            "(no diagnosis call needed)",
            extra={"incident_id": incident.id, "fix_kind": resolution.fix_kind.value}
        )

        try:
            if resolution.fix_kind == FixKind.CODE:
                logger.warning("Code fixes cannot be auto-applied from cache, restarting instead")
                await self._restart()
            else:
                await self._dispatch(resolution.fix_kind, resolution.steps, resolution.code)
        except RemediationError as e:
            logger.error(f"Cached fix failed: {e}", extra={"incident_id": incident.id})
            raise

        logger.info("Cached fix applied successfully", extra={"incident_id": incident.id})

    async def _dispatch(
        self,
        fix_kind: FixKind,
        steps: Sequence[str],
        code: Optional[str]
    ) -> None:
        try:
            fix_kind = FixKind(fix_kind)
        except ValueError:
            raise UnsupportedFixKindError(fix_kind) from None

        for i, step in enumerate(steps, 1):
            logger.info(f"Step {i}: {step}")

        if fix_kind == FixKind.RESTART:
            await self._restart()
        elif fix_kind == FixKind.CONFIG:
            self._apply_config_steps(steps)
            await self._restart()
        elif fix_kind == FixKind.CODE:
            self._flag_code_for_review(code)
            await self._restart()
        else:
            raise UnsupportedFixKindError(fix_kind)

    async def _restart(self) -> None:
        logger.info("Stopping service...")
        try:
            await self.target.stop()
        except WorkloadError as e:
            logger.warning(f"Stop error (continuing): {e}")

        if not await wait_or_stop(self._stop, self.settle_seconds):
            raise RemediationError("restart interrupted by shutdown")

        logger.info("Starting service...")
        try:
            await self.target.start()
        except WorkloadError as e:
            raise RemediationError(f"failed to start service: {e}") from e

        if not await wait_or_stop(self._stop, self.startup_grace_seconds):
            raise RemediationError("restart interrupted by shutdown")

        logger.info("Service restarted")

    def _apply_config_steps(self, steps: Sequence[str]) -> list[str]:
        """Restore the settings named by the steps. Returns the keys restored."""
        restored = []
        for step in steps:
            keys = settings_mentioned(step)
            if not keys:
                if "restart" not in step.lower():
                    logger.info(f"Config step noted: {step}")
                continue

            for key in keys:
                value = self.known_good_config.get(key)
                if value is None:
                    logger.info(f"No known-good value for {key}, step noted: {step}")
                    continue
                self.target.set_config(key, value)
                logger.info(f"Restoring {key} to {value}")
                if key not in restored:
                    restored.append(key)

        return restored

    def _flag_code_for_review(self, code: Optional[str]) -> None:
        logger.warning(
            "Code fixes require manual intervention, attempting restart as fallback",
            extra={"code": code or ""}
        )
        if code:
            for line in code.splitlines():
                logger.warning(f"  {line}")
        else:
            logger.warning("  (No code provided)")
