"""
Incident Responder
==================

Detects incidents on a managed workload, classifies and remediates them,
verifies the fix and remembers what worked.
"""

__version__ = "0.1.0"
