"""
Incident Responder - Classifier
===============================

Assigns an incident class from a workload status snapshot.

Rules are evaluated in a fixed order and the first match wins:

1. database_url absent, empty or malformed      -> CONFIG_ERROR
2. database_url is the unreachable-host sentinel -> DEPENDENCY_FAILURE
3. timeout is not a number or duration           -> CONFIG_ERROR
4. workload reports it is not running            -> SERVICE_DOWN
5. recent logs mention resource exhaustion       -> RESOURCE_EXHAUSTION
6. otherwise                                     -> SERVICE_DOWN

Classification is a pure function of its inputs.
"""

import re
from typing import Optional

from incident_responder.api.schemas import HealthSample, WorkloadStatus
from incident_responder.constants import (
    RESOURCE_KEYWORDS,
    UNREACHABLE_DATABASE_URL,
    IncidentClass,
)

# host:port, host being a hostname or IPv4 address
_DEPENDENCY_URL_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?:\d{1,5}$")

# Plain number or number with a duration unit: 30, 30s, 500ms, 1.5m, 2h
_DURATION_RE = re.compile(r"^\d+(?:\.\d+)?(?:ns|us|ms|s|m|h)?$")


def is_valid_dependency_url(value: Optional[str]) -> bool:
    if not value:
        return False
    if not _DEPENDENCY_URL_RE.match(value):
        return False
    return 0 < int(value.rsplit(":", 1)[1]) <= 65535


def is_valid_timeout(value: Optional[str]) -> bool:
    if value is None:
        return False
    return bool(_DURATION_RE.match(value.strip()))


def mentions_resource_exhaustion(lines: list[str]) -> bool:
    for line in lines:
        lowered = line.lower()
        if any(keyword in lowered for keyword in RESOURCE_KEYWORDS):
            return True
    return False


def initial_symptoms(sample: HealthSample) -> list[str]:
    """Symptoms every incident starts with, taken from the failing sample."""
    symptoms = [f"Health check returned status code: {sample.status_code}"]
    if sample.message:
        symptoms.append(sample.message)
    return symptoms


def classify(
    status: Optional[WorkloadStatus],
    symptoms: list[str]
) -> tuple[IncidentClass, list[str]]:
    """
    Classify an incident.

    Args:
        status: Snapshot of the workload, or None if it could not be taken
        symptoms: Symptoms gathered so far; not modified

    Returns:
        The incident class and the symptom list extended with the finding
    """
    symptoms = list(symptoms)

    if status is None:
        symptoms.append("Workload status unavailable")
        symptoms.append("Service health check failing")
        return IncidentClass.SERVICE_DOWN, symptoms

    database_url = status.config.get("database_url")

    if not is_valid_dependency_url(database_url):
        symptoms.append("Invalid database URL configuration detected")
        return IncidentClass.CONFIG_ERROR, symptoms

    if database_url == UNREACHABLE_DATABASE_URL:
        symptoms.append("Database host unreachable")
        return IncidentClass.DEPENDENCY_FAILURE, symptoms

    if not is_valid_timeout(status.config.get("timeout")):
        symptoms.append("Invalid timeout configuration detected")
        return IncidentClass.CONFIG_ERROR, symptoms

    if not status.running:
        symptoms.append("Service process not running")
        return IncidentClass.SERVICE_DOWN, symptoms

    if mentions_resource_exhaustion(status.recent_logs):
        symptoms.append("Resource exhaustion detected in logs")
        return IncidentClass.RESOURCE_EXHAUSTION, symptoms

    symptoms.append("Service health check failing")
    return IncidentClass.SERVICE_DOWN, symptoms
