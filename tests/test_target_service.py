"""
Incident Responder - Target Service Tests
=========================================

Lifecycle, incident simulation and the HTTP surface of the managed workload.
"""

import socket

import httpx
import pytest

from incident_responder.constants import MAX_WORKLOAD_LOGS, IncidentClass
from incident_responder.core.target_service import TargetService
from incident_responder.exceptions import WorkloadError


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestLifecycle:
    """Tests for start/stop/restart."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, target):
        await target.start()
        assert target.is_running()
        assert target.is_healthy()

        await target.stop()
        assert not target.is_running()
        assert not target.is_healthy()

    @pytest.mark.asyncio
    async def test_double_start_rejected(self, target):
        await target.start()

        with pytest.raises(WorkloadError, match="already running"):
            await target.start()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_rejected(self, target):
        with pytest.raises(WorkloadError, match="not running"):
            await target.stop()

    @pytest.mark.asyncio
    async def test_restart_from_stopped(self, target):
        await target.restart()

        assert target.is_running()

    @pytest.mark.asyncio
    async def test_restart_restores_health_not_config(self, target):
        await target.start()
        target.trigger_incident("config")

        await target.restart()

        assert target.is_healthy()
        assert target.get_config()["database_url"] == "invalid::url::format"


class TestIncidentSimulation:
    """Tests for trigger_incident()."""

    @pytest.mark.parametrize("kind,expected", [
        ("crash", IncidentClass.SERVICE_DOWN),
        ("CONFIG_ERROR", IncidentClass.CONFIG_ERROR),
        ("resource_exhaustion", IncidentClass.RESOURCE_EXHAUSTION),
        ("dependency", IncidentClass.DEPENDENCY_FAILURE),
    ])
    def test_aliases(self, target, kind, expected):
        assert target.trigger_incident(kind) == expected

    def test_unknown_kind(self, target):
        with pytest.raises(ValueError):
            target.trigger_incident("meteor")

    @pytest.mark.asyncio
    async def test_config_trigger_corrupts_config(self, target):
        await target.start()

        target.trigger_incident("config")

        config = target.get_config()
        assert config["database_url"] == "invalid::url::format"
        assert config["timeout"] == "not-a-number"
        assert not target.is_healthy()
        assert target.is_running()

    def test_log_ring_is_bounded(self, target):
        for i in range(MAX_WORKLOAD_LOGS + 10):
            target.add_log(f"error {i}")

        logs = target.get_logs()
        assert len(logs) == MAX_WORKLOAD_LOGS
        assert logs[-1].endswith(f"error {MAX_WORKLOAD_LOGS + 9}")

    def test_snapshot_is_a_copy(self, target):
        snapshot = target.snapshot()
        snapshot.config["database_url"] = "elsewhere:1"

        assert target.get_config()["database_url"] == "localhost:5432"


class TestTargetEndpoints:
    """Tests for the workload HTTP surface."""

    @pytest.fixture
    def client(self, target):
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=target.app), base_url="http://target")

    @pytest.mark.asyncio
    async def test_health_reflects_state(self, target, client):
        await target.start()

        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["healthy"] is True

        target.trigger_incident("resource")

        response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["healthy"] is False

    @pytest.mark.asyncio
    async def test_status(self, target, client):
        await target.start()

        body = (await client.get("/status")).json()

        assert body["running"] is True
        assert body["config"] == {"database_url": "localhost:5432", "timeout": "30s", "max_retries": "3"}

    @pytest.mark.asyncio
    async def test_api_data_unavailable_when_unhealthy(self, target, client):
        await target.start()
        assert (await client.get("/api/data")).status_code == 200

        target.trigger_incident("crash")

        assert (await client.get("/api/data")).status_code == 503

    @pytest.mark.asyncio
    async def test_trigger_endpoint(self, target, client):
        await target.start()

        response = await client.post("/trigger-incident", params={"type": "dependency"})

        assert response.status_code == 200
        assert "dependency_failure" in response.text
        assert target.get_config()["database_url"] == "unreachable-host:9999"

    @pytest.mark.asyncio
    async def test_trigger_endpoint_unknown_type(self, client):
        response = await client.get("/trigger-incident", params={"type": "meteor"})

        assert response.status_code == 400
        assert "Valid types" in response.text


class TestServedOverHttp:
    """The workload bound to a real socket."""

    @pytest.mark.asyncio
    async def test_serves_and_restarts(self):
        port = free_port()
        target = TargetService(port=port, restart_pause_seconds=0)

        async def health_status() -> int:
            async with httpx.AsyncClient(base_url=target.url) as client:
                return (await client.get("/health")).status_code

        await target.start()
        try:
            assert await health_status() == 200

            await target.restart()

            assert await health_status() == 200
        finally:
            await target.stop()

        with pytest.raises(httpx.ConnectError):
            async with httpx.AsyncClient(base_url=target.url) as client:
                await client.get("/health")

    @pytest.mark.asyncio
    async def test_port_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            target = TargetService(port=blocker.getsockname()[1])

            with pytest.raises(WorkloadError):
                await target.start()

        assert not target.is_running()
