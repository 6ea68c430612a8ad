"""
Incident Responder - Exceptions
===============================

Error hierarchy raised by responder components.
"""


class ResponderError(Exception):
    """Base class for all responder errors."""
    pass


class WorkloadError(ResponderError):
    """Raised when the managed workload rejects a lifecycle operation."""
    pass


class RemediationError(ResponderError):
    """Raised when a remediation plan could not be applied."""
    pass


class UnsupportedFixKindError(RemediationError):
    """Raised when a plan names a fix kind the executor cannot dispatch."""

    def __init__(self, fix_kind: object):
        super().__init__(f"Unknown fix type: {fix_kind}")
        self.fix_kind = fix_kind


class DiagnosisError(ResponderError):
    """Raised when the diagnosis source fails or returns an invalid plan."""
    pass


class InvalidTransitionError(ResponderError):
    """Raised when an incident status would move backwards."""

    def __init__(self, incident_id: str, current: str, requested: str):
        super().__init__(
            f"Incident {incident_id} cannot move from {current} to {requested}"
        )
        self.incident_id = incident_id
        self.current = current
        self.requested = requested


class PersistenceError(ResponderError):
    """Raised when the incident store cannot be read or written."""
    pass
