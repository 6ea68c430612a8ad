"""
Incident Responder - Incident Store
===================================

Persistent log of every incident and of the learned fix per incident
class, kept in one JSON document::

    {"incidents": {id: Incident}, "fixes": {class: Resolution}, "last_updated": ts}

The document is loaded once at startup (a missing file means an empty
log) and rewritten after every mutation. Persistence is best effort:
load and save failures are logged as warnings and never interrupt
incident processing.
"""

import json
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from incident_responder.api.schemas import (
    Incident,
    Resolution,
    StoreDocument,
    StoreStats,
    utc_now,
)
from incident_responder.constants import IncidentClass, IncidentStatus
from incident_responder.exceptions import PersistenceError
from incident_responder.utils.locks import RWLock
from incident_responder.utils.logging import get_logger

logger = get_logger(__name__)


class IncidentStore:
    """
    Thread-safe incident and fix storage backed by a JSON file.

    Stored incidents are deep copies, so later changes made by the
    orchestrator only reach the log through another ``save_incident``.
    """

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)
        self._incidents: dict[str, Incident] = {}
        self._fixes: dict[IncidentClass, Resolution] = {}
        self._last_updated = utc_now()
        self._lock = RWLock()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Load the document from disk.

        Returns:
            True if a document was loaded, False if starting empty
        """
        try:
            document = self._read()
        except PersistenceError as e:
            logger.warning(f"Could not load incident log, starting empty: {e}")
            return False

        if document is None:
            logger.info(f"No incident log at {self.file_path}, starting fresh")
            return False

        with self._lock.write():
            self._incidents = dict(document.incidents)
            self._fixes = dict(document.fixes)
            self._last_updated = document.last_updated

        logger.info(
            f"Loaded {len(document.incidents)} incidents and {len(document.fixes)} learned fixes",
            extra={"incidents": len(document.incidents), "fixes": len(document.fixes)}
        )
        return True

    def _read(self) -> Optional[StoreDocument]:
        if not self.file_path.exists():
            return None
        try:
            return StoreDocument.model_validate_json(self.file_path.read_bytes())
        except (OSError, ValidationError, UnicodeDecodeError) as e:
            raise PersistenceError(str(e)) from e

    def _write(self) -> None:
        """Serialize and atomically replace the document. Caller holds the write lock."""
        self._last_updated = utc_now()
        document = StoreDocument(
            incidents=self._incidents,
            fixes=self._fixes,
            last_updated=self._last_updated,
        )
        payload = json.dumps(document.model_dump(mode="json"), indent=2)

        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise PersistenceError(f"failed to write {self.file_path}: {e}") from e

    def _persist(self) -> bool:
        try:
            self._write()
            return True
        except PersistenceError as e:
            logger.warning(f"Incident log not saved: {e}")
            return False

    # -------------------------------------------------------------------------
    # Incidents
    # -------------------------------------------------------------------------

    def save_incident(self, incident: Incident) -> bool:
        """Insert or replace an incident record and persist. Returns False if the save failed."""
        with self._lock.write():
            self._incidents[incident.id] = incident.model_copy(deep=True)
            return self._persist()

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        with self._lock.read():
            incident = self._incidents.get(incident_id)
            return incident.model_copy(deep=True) if incident else None

    def list_incidents(
        self,
        status: Optional[IncidentStatus] = None,
        incident_class: Optional[IncidentClass] = None,
        limit: Optional[int] = None
    ) -> list[Incident]:
        """List incidents, newest first, with optional filtering."""
        with self._lock.read():
            incidents = [i.model_copy(deep=True) for i in self._incidents.values()]

        if status:
            incidents = [i for i in incidents if i.status == status]
        if incident_class:
            incidents = [i for i in incidents if i.incident_class == incident_class]

        incidents.sort(key=lambda i: i.detected_at, reverse=True)

        return incidents[:limit] if limit is not None else incidents

    def count_incidents(self) -> int:
        with self._lock.read():
            return len(self._incidents)

    # -------------------------------------------------------------------------
    # Learned fixes
    # -------------------------------------------------------------------------

    def get_fixes(self) -> dict[IncidentClass, Resolution]:
        with self._lock.read():
            return dict(self._fixes)

    def save_fix(self, incident_class: IncidentClass, resolution: Resolution) -> bool:
        """Record the learned fix for a class and persist."""
        with self._lock.write():
            self._fixes[IncidentClass(incident_class)] = resolution
            return self._persist()

    def clear_fixes(self) -> bool:
        with self._lock.write():
            self._fixes = {}
            return self._persist()

    def clear(self) -> bool:
        """Remove every incident and fix."""
        with self._lock.write():
            self._incidents = {}
            self._fixes = {}
            return self._persist()

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_stats(self) -> StoreStats:
        """Aggregate counts over the whole log."""
        with self._lock.read():
            by_class: dict[str, int] = {}
            resolved = failed = 0
            for incident in self._incidents.values():
                key = incident.incident_class.value if incident.incident_class else "unclassified"
                by_class[key] = by_class.get(key, 0) + 1
                if incident.status == IncidentStatus.RESOLVED:
                    resolved += 1
                elif incident.status == IncidentStatus.FAILED:
                    failed += 1

            return StoreStats(
                total_incidents=len(self._incidents),
                resolved=resolved,
                failed=failed,
                learned_fixes=len(self._fixes),
                incidents_by_class=by_class,
                available_fix_classes=sorted(c.value for c in self._fixes),
            )

    def log_summary(self) -> None:
        """Write the end-of-run summary to the log."""
        stats = self.get_stats()
        logger.info(
            "Incident responder summary: "
            f"{stats.total_incidents} handled, {stats.resolved} resolved, "
            f"{stats.failed} failed, {stats.learned_fixes} learned fixes",
            extra=stats.model_dump()
        )
        for incident_class in stats.available_fix_classes:
            logger.info(f"Learned fix available for {incident_class} incidents")
