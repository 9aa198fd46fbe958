from itertools import count

import pytest
from pydantic import ValidationError

from impcg_companion.modules.audit_trail import AuditAction
from impcg_companion.modules.patient_repository import PatientRepository
from impcg_companion.modules.schemas import TriageColor, VitalsSnapshot
from impcg_companion.modules.storage import PATIENTS_KEY


@pytest.fixture
def repository(store, audit, clock):
    ids = count(1)
    return PatientRepository(store, audit=audit, clock=clock, id_factory=lambda: f"rec-{next(ids)}")


class TestPatientRepository:

    def test_empty_store_has_no_records(self, repository):
        assert repository.all_records() == []
        assert repository.stats().total == 0

    def test_unclassifiable_encounter_is_not_saved(self, repository, store, audit):
        assert repository.save_encounter(VitalsSnapshot()) is None
        assert PATIENTS_KEY not in store
        audit.record.assert_not_called()

    def test_save_encounter_builds_record(self, repository, clock):
        vitals = VitalsSnapshot(systolic_bp=165, diastolic_bp=100, heart_rate=90)
        record = repository.save_encounter(vitals, notes="  headache  ", gestational_age_weeks=34)

        assert record.id == "rec-1"
        assert record.timestamp == clock.now
        assert record.triage_result == TriageColor.RED
        assert record.notes == "headache"
        assert record.synced is False
        assert record.gestational_age_weeks == 34

    def test_save_encounter_is_audited_against_record(self, repository, audit):
        repository.save_encounter(VitalsSnapshot(systolic_bp=120, diastolic_bp=80))
        audit.record.assert_called_once_with(
            AuditAction.TRIAGE_SAVED, "Saved GREEN encounter. BP:120/80, GA:N/A", "rec-1"
        )

    def test_records_are_newest_first(self, repository, clock):
        repository.save_encounter(VitalsSnapshot(heart_rate=80))
        clock.advance(minutes=10)
        repository.save_encounter(VitalsSnapshot(heart_rate=110))

        assert [r.id for r in repository.all_records()] == ["rec-2", "rec-1"]

    def test_get_record(self, repository):
        repository.save_encounter(VitalsSnapshot(heart_rate=80))
        assert repository.get_record("rec-1").vitals.heart_rate == 80
        assert repository.get_record("missing") is None

    def test_stats_count_yellow_as_high_risk(self, repository):
        repository.save_encounter(VitalsSnapshot(heart_rate=80))
        repository.save_encounter(VitalsSnapshot(heart_rate=110))
        repository.save_encounter(VitalsSnapshot(heart_rate=130))

        stats = repository.stats()
        assert (stats.high_risk, stats.low_risk, stats.total) == (2, 1, 3)

    def test_corrupt_store_reads_as_empty(self, repository, store):
        store.set(PATIENTS_KEY, "[{broken")
        assert repository.all_records() == []

    def test_records_survive_new_repository(self, repository, store):
        saved = repository.save_encounter(
            VitalsSnapshot(systolic_bp=145, diastolic_bp=92, temperature=37.2), notes="swelling"
        )
        reloaded = PatientRepository(store).all_records()
        assert [r.model_dump() for r in reloaded] == [saved.model_dump()]

    def test_saved_record_vitals_are_immutable(self, repository):
        record = repository.save_encounter(VitalsSnapshot(systolic_bp=120, diastolic_bp=80))
        with pytest.raises(ValidationError):
            record.vitals.systolic_bp = 200
        assert repository.get_record(record.id).vitals.systolic_bp == 120
