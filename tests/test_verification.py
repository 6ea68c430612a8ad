"""
Incident Responder - Verification Loop Tests
============================================
"""

import pytest

from incident_responder.core.verification import VerificationLoop


class TestVerificationLoop:
    """Tests for the fixed three-probe confirmation."""

    @pytest.mark.asyncio
    async def test_all_probes_pass(self, scripted_probe):
        probe = scripted_probe([True, True, True])
        verifier = VerificationLoop(probe, interval_seconds=0)

        assert await verifier.run() is True
        assert verifier.probes_run == 3
        assert probe.calls == 3

    @pytest.mark.asyncio
    async def test_short_circuits_on_first_failure(self, scripted_probe):
        probe = scripted_probe([True, False, True])
        verifier = VerificationLoop(probe, interval_seconds=0)

        assert await verifier.run() is False
        assert probe.calls == 2

    @pytest.mark.asyncio
    async def test_first_probe_failing(self, scripted_probe):
        probe = scripted_probe([False])
        verifier = VerificationLoop(probe, interval_seconds=0)

        assert await verifier.run() is False
        assert verifier.probes_run == 1

    @pytest.mark.asyncio
    async def test_probe_exception_fails_verification(self):
        async def broken():
            raise RuntimeError("no route to host")

        assert await VerificationLoop(broken, interval_seconds=0).run() is False

    @pytest.mark.asyncio
    async def test_stop_aborts_between_probes(self, scripted_probe, stop_event):
        probe = scripted_probe([True])
        stop_event.set()
        verifier = VerificationLoop(probe, interval_seconds=60, stop_event=stop_event)

        assert await verifier.run() is False
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_each_run_starts_fresh(self, scripted_probe):
        probe = scripted_probe([False, True, True, True])
        verifier = VerificationLoop(probe, interval_seconds=0)

        assert await verifier.run() is False
        assert await verifier.run() is True
        assert verifier.probes_run == 3
