"""
Incident Responder - Utilities Package
======================================

Logging, HTTP client, retry, locking and cancellable waits.
"""

from incident_responder.utils.logging import get_logger, setup_logging
from incident_responder.utils.http_client import ServiceClient
from incident_responder.utils.retry import with_retry, RetryConfig
from incident_responder.utils.locks import RWLock
from incident_responder.utils.timing import wait_or_stop

__all__ = [
    "get_logger",
    "setup_logging",
    "ServiceClient",
    "with_retry",
    "RetryConfig",
    "RWLock",
    "wait_or_stop",
]
