"""
Incident Responder - Core Package
"""

from incident_responder.core.classifier import classify
from incident_responder.core.fix_cache import FixCache
from incident_responder.core.health_monitor import HealthMonitor
from incident_responder.core.incident_store import IncidentStore
from incident_responder.core.orchestrator import Orchestrator
from incident_responder.core.remediation_executor import RemediationExecutor
from incident_responder.core.target_service import TargetService
from incident_responder.core.verification import VerificationLoop

__all__ = [
    "classify",
    "FixCache",
    "HealthMonitor",
    "IncidentStore",
    "Orchestrator",
    "RemediationExecutor",
    "TargetService",
    "VerificationLoop",
]
