"""
Incident Responder - Utility Tests
==================================

Cancellable waits, the reader/writer lock, retry and structured logging.
"""

import asyncio
import json
import logging
import threading
import time

import pytest

from incident_responder.utils.locks import RWLock
from incident_responder.utils.logging import (
    StructuredFormatter,
    get_correlation_id,
    set_correlation_id,
)
from incident_responder.utils.retry import RetryConfig, calculate_delay, retry_async
from incident_responder.utils.timing import get_or_stop, put_or_stop, wait_or_stop


class TestCancellableWaits:
    """Tests for the stop-aware wait helpers."""

    @pytest.mark.asyncio
    async def test_wait_elapses(self, stop_event):
        assert await wait_or_stop(stop_event, 0.01) is True

    @pytest.mark.asyncio
    async def test_wait_interrupted(self, stop_event):
        asyncio.get_running_loop().call_later(0.01, stop_event.set)

        started = time.monotonic()
        assert await wait_or_stop(stop_event, 30) is False
        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_wait_without_stop_event(self):
        assert await wait_or_stop(None, 0) is True

    @pytest.mark.asyncio
    async def test_get_returns_item(self, stop_event):
        queue = asyncio.Queue()
        asyncio.get_running_loop().call_later(0.01, queue.put_nowait, "event")

        assert await get_or_stop(queue, stop_event) == "event"

    @pytest.mark.asyncio
    async def test_get_returns_none_on_stop(self, stop_event):
        asyncio.get_running_loop().call_later(0.01, stop_event.set)

        assert await get_or_stop(asyncio.Queue(), stop_event) is None

    @pytest.mark.asyncio
    async def test_put_after_stop_refused(self, stop_event):
        queue = asyncio.Queue()
        stop_event.set()

        assert await put_or_stop(queue, "event", stop_event) is False
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_put_waits_for_space(self, stop_event):
        queue = asyncio.Queue(maxsize=1)
        queue.put_nowait("first")
        asyncio.get_running_loop().call_later(0.01, queue.get_nowait)

        assert await put_or_stop(queue, "second", stop_event) is True
        assert queue.get_nowait() == "second"


class TestRWLock:
    """Tests for the reader/writer lock."""

    def test_readers_share(self):
        lock = RWLock()

        with lock.read():
            with lock.read():
                assert lock.readers == 2

        assert lock.readers == 0

    def test_writer_excludes_readers(self):
        lock = RWLock()
        order = []

        lock.acquire_write()

        def reader():
            with lock.read():
                order.append("read")

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        order.append("write-done")
        lock.release_write()
        thread.join(timeout=1)

        assert order == ["write-done", "read"]
        assert not lock.write_locked


class TestRetry:
    """Tests for bounded retry."""

    def test_delay_is_capped(self):
        assert calculate_delay(0, 1.0, 5.0, 2.0) == 1.0
        assert calculate_delay(10, 1.0, 5.0, 2.0) == 5.0

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        config = RetryConfig(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))

        assert await retry_async(flaky, config=config) == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        attempts = []

        async def broken():
            attempts.append(1)
            raise ValueError("bad input")

        config = RetryConfig(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))

        with pytest.raises(ValueError):
            await retry_async(broken, config=config)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_stop_cuts_backoff_short(self):
        stop_event = asyncio.Event()
        attempts = []

        async def unreachable():
            attempts.append(1)
            stop_event.set()
            raise ConnectionError("refused")

        config = RetryConfig(max_attempts=5, base_delay=30, retryable_exceptions=(ConnectionError,))

        with pytest.raises(ConnectionError):
            await asyncio.wait_for(
                retry_async(unreachable, config=config, stop_event=stop_event),
                timeout=1
            )
        assert len(attempts) == 1


class TestStructuredLogging:
    """Tests for the JSON formatter."""

    def test_record_includes_correlation_and_extras(self):
        set_correlation_id("incident-1")
        try:
            record = logging.LogRecord("test", logging.INFO, __file__, 1, "Fix applied", None, None)
            record.fix_kind = "restart"

            entry = json.loads(StructuredFormatter("incident-responder").format(record))
        finally:
            set_correlation_id(None)

        assert entry["message"] == "Fix applied"
        assert entry["service"] == "incident-responder"
        assert entry["correlation_id"] == "incident-1"
        assert entry["fix_kind"] == "restart"
        assert get_correlation_id() is None
