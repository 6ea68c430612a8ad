"""
Incident Responder - Constants
==============================

Enumerations and fixed values shared across the responder.
"""

from enum import Enum


class IncidentClass(str, Enum):
    """Taxonomy bucket assigned to an incident by classification."""
    SERVICE_DOWN = "service_down"                # Process crashed or stopped responding
    CONFIG_ERROR = "config_error"                # Configuration holds invalid values
    RESOURCE_EXHAUSTION = "resource_exhaustion"  # Port blocked, memory full
    DEPENDENCY_FAILURE = "dependency_failure"    # Downstream dependency unreachable


class IncidentStatus(str, Enum):
    """Lifecycle status of an incident."""
    DETECTED = "detected"     # Initial detection
    ANALYZING = "analyzing"   # Waiting on the diagnosis source
    FIXING = "fixing"         # Remediation plan being applied
    RESOLVED = "resolved"     # Fix applied and verified
    FAILED = "failed"         # Fix could not be applied or verified


class FixKind(str, Enum):
    """Kinds of remediation the executor can apply."""
    RESTART = "restart"   # Stop and start the workload
    CONFIG = "config"     # Restore known-good settings, then restart
    CODE = "code"         # Flagged for human review, restart as fallback


# Position of each status in the lifecycle; transitions only move forward
STATUS_ORDER = {
    IncidentStatus.DETECTED: 0,
    IncidentStatus.ANALYZING: 1,
    IncidentStatus.FIXING: 2,
    IncidentStatus.RESOLVED: 3,
    IncidentStatus.FAILED: 3,
}

TERMINAL_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.FAILED})


class Timing:
    """Timing constants for the remediation pipeline (seconds)."""
    CHECK_INTERVAL_SECONDS = 3.0        # Health sampling interval
    PROBE_TIMEOUT_SECONDS = 5.0         # Timeout for every outbound probe
    RESTART_SETTLE_SECONDS = 0.5        # Pause between stop and start
    STARTUP_GRACE_SECONDS = 1.0         # Wait after start before reporting
    STABILIZATION_SECONDS = 2.0         # Wait after a fix before verifying
    VERIFICATION_INTERVAL_SECONDS = 1.0  # Spacing between verification probes
    WORKLOAD_RESTART_PAUSE_SECONDS = 1.0  # Pause inside TargetService.restart


# Verification always runs this many probes
VERIFICATION_PROBES = 3

# Known-good workload configuration
DEFAULT_DATABASE_URL = "localhost:5432"
DEFAULT_TIMEOUT = "30s"
DEFAULT_MAX_RETRIES = "3"

# Values the simulated workload writes when an incident is triggered
INVALID_DATABASE_URL = "invalid::url::format"
UNREACHABLE_DATABASE_URL = "unreachable-host:9999"
INVALID_TIMEOUT = "not-a-number"

# Log keywords that point at resource exhaustion
RESOURCE_KEYWORDS = ("resource", "port blocked", "port-blocked", "memory")

# Maximum number of error log lines the workload retains
MAX_WORKLOAD_LOGS = 50

# HTTP status code classifications
HTTP_OK_CODES = range(200, 300)
