"""
Incident Responder - Shared Test Fixtures
"""

import asyncio
from typing import Iterable

import pytest

from incident_responder.api.schemas import HealthSample
from incident_responder.core.incident_store import IncidentStore
from incident_responder.core.target_service import TargetService


class ScriptedProbe:
    """Health probe that replays a fixed sequence of results, then repeats the last one."""

    def __init__(self, results: Iterable[bool], stop_event: asyncio.Event = None):
        self.results = list(results)
        self.calls = 0
        self.samples: list[HealthSample] = []
        self._stop = stop_event

    async def __call__(self) -> HealthSample:
        index = min(self.calls, len(self.results) - 1)
        self.calls += 1
        if self._stop is not None and self.calls >= len(self.results):
            self._stop.set()
        healthy = self.results[index]
        result = HealthSample(
            healthy=healthy,
            message="ok" if healthy else "down",
            status_code=200 if healthy else 503,
        )
        self.samples.append(result)
        return result


@pytest.fixture
def stop_event():
    return asyncio.Event()


@pytest.fixture
def target():
    """In-memory workload with no restart pause."""
    return TargetService(serve_http=False, restart_pause_seconds=0)


@pytest.fixture
def store(tmp_path):
    return IncidentStore(tmp_path / "incident_memory.json")


@pytest.fixture
def scripted_probe():
    """Factory for ScriptedProbe instances."""
    return ScriptedProbe
