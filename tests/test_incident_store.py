"""
Incident Responder - Incident Store Tests
=========================================
"""

from datetime import timedelta

from incident_responder.api.schemas import Incident, Resolution, utc_now
from incident_responder.constants import FixKind, IncidentClass, IncidentStatus
from incident_responder.core.incident_store import IncidentStore


def resolved_incident(**overrides) -> Incident:
    incident = Incident(
        incident_class=IncidentClass.CONFIG_ERROR,
        symptoms=["Health check returned status code: 503", "Invalid timeout configuration detected"],
        logs=["[10:00:00] Configuration corrupted - invalid values detected"],
        diagnosis="Configuration file contains invalid values",
        **overrides
    )
    incident.advance(IncidentStatus.RESOLVED)
    incident.resolution = Resolution(
        fix_kind=FixKind.CONFIG,
        description="Configuration file contains invalid values",
        steps=("Reset timeout to '30s'",),
        success=True,
    )
    return incident


class TestPersistence:
    """Tests for loading and saving the JSON document."""

    def test_round_trip(self, store):
        incident = resolved_incident(used_cached_fix=True)
        store.save_incident(incident)
        store.save_fix(IncidentClass.CONFIG_ERROR, incident.resolution)

        reloaded = IncidentStore(store.file_path)
        assert reloaded.load() is True

        restored = reloaded.get_incident(incident.id)
        assert restored == incident
        assert restored.used_cached_fix is True
        assert restored.resolved_at is not None
        assert reloaded.get_fixes() == {IncidentClass.CONFIG_ERROR: incident.resolution}

    def test_missing_file_starts_empty(self, store):
        assert store.load() is False
        assert store.list_incidents() == []
        assert store.get_fixes() == {}

    def test_corrupt_file_starts_empty(self, store):
        store.file_path.write_text("{not json")

        assert store.load() is False
        assert store.count_incidents() == 0

    def test_undecodable_file_starts_empty(self, store):
        store.file_path.write_bytes(b'{"incidents": {"\xff\xfe": 1}}')

        assert store.load() is False
        assert store.count_incidents() == 0
        assert store.save_incident(Incident()) is True

    def test_save_leaves_no_temp_file(self, store):
        store.save_incident(Incident())

        assert store.file_path.exists()
        assert not store.file_path.with_name(store.file_path.name + ".tmp").exists()

    def test_save_failure_is_reported_not_raised(self, tmp_path):
        unwritable = IncidentStore(tmp_path)

        assert unwritable.save_incident(Incident()) is False
        assert unwritable.count_incidents() == 1

    def test_stored_copy_is_independent(self, store):
        incident = Incident()
        store.save_incident(incident)

        incident.symptoms.append("added later")
        incident.advance(IncidentStatus.ANALYZING)

        stored = store.get_incident(incident.id)
        assert stored.symptoms == []
        assert stored.status == IncidentStatus.DETECTED


class TestQueries:
    """Tests for listing, filtering and statistics."""

    def test_list_newest_first_with_filters(self, store):
        now = utc_now()
        old = Incident(incident_class=IncidentClass.SERVICE_DOWN, detected_at=now - timedelta(minutes=5))
        new = Incident(incident_class=IncidentClass.SERVICE_DOWN, detected_at=now)
        other = resolved_incident(detected_at=now - timedelta(minutes=1))
        for incident in (old, new, other):
            store.save_incident(incident)

        assert [i.id for i in store.list_incidents()] == [new.id, other.id, old.id]
        assert [i.id for i in store.list_incidents(incident_class=IncidentClass.SERVICE_DOWN)] == [new.id, old.id]
        assert [i.id for i in store.list_incidents(status=IncidentStatus.RESOLVED)] == [other.id]
        assert len(store.list_incidents(limit=1)) == 1

    def test_get_unknown_incident(self, store):
        assert store.get_incident("missing") is None

    def test_stats(self, store):
        store.save_incident(resolved_incident())
        failed = Incident(incident_class=IncidentClass.SERVICE_DOWN)
        failed.advance(IncidentStatus.FAILED)
        store.save_incident(failed)
        store.save_incident(Incident())
        store.save_fix(IncidentClass.CONFIG_ERROR, resolved_incident().resolution)

        stats = store.get_stats()

        assert stats.total_incidents == 3
        assert stats.resolved == 1
        assert stats.failed == 1
        assert stats.learned_fixes == 1
        assert stats.incidents_by_class == {
            "config_error": 1,
            "service_down": 1,
            "unclassified": 1,
        }
        assert stats.available_fix_classes == ["config_error"]

    def test_clear(self, store):
        store.save_incident(Incident())
        store.save_fix(IncidentClass.CONFIG_ERROR, resolved_incident().resolution)

        store.clear()

        assert store.count_incidents() == 0
        assert store.get_fixes() == {}
