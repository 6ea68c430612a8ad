"""
Incident Responder - Remediation Executor Tests
===============================================
"""

from unittest.mock import AsyncMock, patch

import pytest

from incident_responder.api.schemas import DiagnosisPlan, Incident, Resolution
from incident_responder.constants import FixKind, IncidentClass
from incident_responder.core.diagnosis import fallback_plan
from incident_responder.core.remediation_executor import (
    RemediationExecutor,
    settings_mentioned,
)
from incident_responder.exceptions import (
    RemediationError,
    UnsupportedFixKindError,
    WorkloadError,
)


@pytest.fixture
def executor(target, stop_event):
    return RemediationExecutor(
        target,
        settle_seconds=0,
        startup_grace_seconds=0,
        stop_event=stop_event
    )


class TestConfigVocabulary:
    """Tests for matching free-text steps to settings."""

    @pytest.mark.parametrize("step,keys", [
        ("Restore database_url to 'localhost:5432'", ["database_url"]),
        ("Update the Database URL to a valid host", ["database_url"]),
        ("Point the dependency URL back at the primary", ["database_url"]),
        ("Reset timeout to '30s'", ["timeout"]),
        ("Set max_retries to 3", ["max_retries"]),
        ("Raise the retry count", ["max_retries"]),
        ("Restore database_url and timeout", ["database_url", "timeout"]),
        ("Restart service to apply changes", []),
    ])
    def test_settings_mentioned(self, step, keys):
        assert settings_mentioned(step) == keys


class TestExecuteFix:
    """Tests for each fix kind."""

    @pytest.mark.asyncio
    async def test_restart_on_stopped_service(self, executor, target):
        plan = fallback_plan(IncidentClass.SERVICE_DOWN)

        resolution = await executor.execute_fix(Incident(), plan)

        assert target.is_running()
        assert target.is_healthy()
        assert resolution.success is True
        assert resolution.fix_kind == FixKind.RESTART
        assert resolution.description == plan.diagnosis
        assert list(resolution.steps) == plan.steps

    @pytest.mark.asyncio
    async def test_restart_clears_unhealthy_state(self, executor, target):
        await target.start()
        target.trigger_incident("crash")

        await executor.execute_fix(Incident(), fallback_plan(IncidentClass.SERVICE_DOWN))

        assert target.is_healthy()

    @pytest.mark.asyncio
    async def test_config_fix_restores_known_good_values(self, executor, target):
        await target.start()
        target.trigger_incident("config")

        await executor.execute_fix(Incident(), fallback_plan(IncidentClass.CONFIG_ERROR))

        config = target.get_config()
        assert config["database_url"] == "localhost:5432"
        assert config["timeout"] == "30s"
        assert target.is_healthy()

    @pytest.mark.asyncio
    async def test_dependency_fix_restores_database_url(self, executor, target):
        await target.start()
        target.trigger_incident("dependency")

        await executor.execute_fix(Incident(), fallback_plan(IncidentClass.DEPENDENCY_FAILURE))

        assert target.get_config()["database_url"] == "localhost:5432"

    @pytest.mark.asyncio
    async def test_unrecognized_config_step_is_not_an_error(self, executor, target):
        await target.start()
        plan = DiagnosisPlan(diagnosis="odd", fix_kind=FixKind.CONFIG, steps=["Flush the DNS cache"])

        resolution = await executor.execute_fix(Incident(), plan)

        assert resolution.success is True
        assert target.get_config()["timeout"] == "30s"

    @pytest.mark.asyncio
    async def test_code_fix_restarts(self, executor, target):
        plan = DiagnosisPlan(
            diagnosis="Nil check missing",
            fix_kind=FixKind.CODE,
            steps=["Add a nil check"],
            code="if conn is None:\n    return",
        )

        resolution = await executor.execute_fix(Incident(), plan)

        assert resolution.code == plan.code
        assert target.is_running()

    @pytest.mark.asyncio
    async def test_unknown_fix_kind(self, executor, target):
        with pytest.raises(UnsupportedFixKindError, match="Unknown fix type: reboot"):
            await executor._dispatch("reboot", ["Reboot the host"], None)

        assert not target.is_running()

    @pytest.mark.asyncio
    async def test_start_failure_raises(self, executor, target):
        with patch.object(target, "start", AsyncMock(side_effect=WorkloadError("port in use"))):
            with pytest.raises(RemediationError, match="failed to start service"):
                await executor.execute_fix(Incident(), fallback_plan(IncidentClass.SERVICE_DOWN))

    @pytest.mark.asyncio
    async def test_stop_request_aborts_restart(self, executor, stop_event):
        stop_event.set()

        with pytest.raises(RemediationError, match="interrupted"):
            await executor.execute_fix(Incident(), fallback_plan(IncidentClass.SERVICE_DOWN))


class TestApplyCachedFix:
    """Tests for replaying learned fixes."""

    @pytest.mark.asyncio
    async def test_cached_config_fix(self, executor, target):
        await target.start()
        target.trigger_incident("config")
        cached = Resolution.from_plan(fallback_plan(IncidentClass.CONFIG_ERROR), success=True)

        await executor.apply_cached_fix(Incident(), cached)

        assert target.get_config()["database_url"] == "localhost:5432"
        assert target.is_healthy()

    @pytest.mark.asyncio
    async def test_cached_code_fix_only_restarts(self, executor, target):
        cached = Resolution(fix_kind=FixKind.CODE, code="patch()", success=True)

        with patch.object(executor, "_flag_code_for_review") as flag:
            await executor.apply_cached_fix(Incident(), cached)

        flag.assert_not_called()
        assert target.is_running()

    @pytest.mark.asyncio
    async def test_cached_fix_failure_raises(self, executor, target):
        cached = Resolution(fix_kind=FixKind.RESTART, success=True)

        with patch.object(target, "start", AsyncMock(side_effect=WorkloadError("boom"))):
            with pytest.raises(RemediationError):
                await executor.apply_cached_fix(Incident(), cached)
