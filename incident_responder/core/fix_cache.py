"""
Incident Responder - Fix Cache
==============================

Learned fixes: the most recent verified-successful Resolution per
incident class.

One entry per class, newest success overwrites. Older fixes are not kept
here; the incident store holds the full history. Lookups take the lock
shared, updates take it exclusively.
"""

from typing import Iterator, Optional

from incident_responder.api.schemas import Resolution
from incident_responder.constants import IncidentClass
from incident_responder.core.incident_store import IncidentStore
from incident_responder.utils.locks import RWLock
from incident_responder.utils.logging import get_logger

logger = get_logger(__name__)


class FixCache:
    """
    Class -> Resolution map with write-through to the incident store.

    Example:
        cache = FixCache(store)
        cache.update(IncidentClass.SERVICE_DOWN, resolution)
        cache.lookup(IncidentClass.SERVICE_DOWN)
    """

    def __init__(self, store: Optional[IncidentStore] = None):
        self._store = store
        self._lock = RWLock()
        self._fixes: dict[IncidentClass, Resolution] = (
            store.get_fixes() if store is not None else {}
        )

    def lookup(self, incident_class: IncidentClass) -> Optional[Resolution]:
        """Return the learned fix for a class, if any."""
        with self._lock.read():
            return self._fixes.get(incident_class)

    def update(self, incident_class: IncidentClass, resolution: Resolution) -> None:
        """
        Learn a fix, replacing any previous entry for the class.

        Raises:
            ValueError: if the resolution is not marked successful
        """
        if not resolution.success:
            raise ValueError("only successful resolutions can be cached")

        incident_class = IncidentClass(incident_class)
        with self._lock.write():
            replaced = incident_class in self._fixes
            self._fixes[incident_class] = resolution

        if self._store is not None:
            self._store.save_fix(incident_class, resolution)

        logger.info(
            f"Learned fix for {incident_class.value} incidents",
            extra={
                "incident_class": incident_class.value,
                "fix_kind": resolution.fix_kind.value,
                "replaced": replaced
            }
        )

    def clear(self) -> None:
        """Forget every learned fix."""
        with self._lock.write():
            self._fixes = {}

        if self._store is not None:
            self._store.clear_fixes()

    def classes(self) -> list[IncidentClass]:
        with self._lock.read():
            return list(self._fixes)

    def snapshot(self) -> dict[IncidentClass, Resolution]:
        with self._lock.read():
            return dict(self._fixes)

    def __contains__(self, incident_class: object) -> bool:
        with self._lock.read():
            return incident_class in self._fixes

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._fixes)

    def __iter__(self) -> Iterator[IncidentClass]:
        return iter(self.classes())
