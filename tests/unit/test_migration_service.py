"""Tests for copying a provider bundle into the local FHIR store."""

import copy
import itertools
from unittest.mock import AsyncMock, patch

import pytest

from healthhub.infrastructure.fhir.demo import DemoFHIRClient
from healthhub.infrastructure.fhir.exceptions import (
    FHIROperationError,
    FHIRValidationError,
)
from healthhub.services import migration_service, session_service
from healthhub.services.migration_service import (
    migrate_bundle,
    rewrite_patient_references,
    run_session_migration,
)


class RecordingStore:
    """Destination store double that mints sequential ids."""

    def __init__(self, fail_on: str | None = None, fail_on_call: int | None = None):
        self.created: list[tuple[str, dict]] = []
        self.fail_on = fail_on
        self.fail_on_call = fail_on_call
        self.calls = 0
        self._ids = itertools.count(1)

    async def create(self, resource_type, body):
        self.calls += 1
        if resource_type == self.fail_on or self.calls == self.fail_on_call:
            raise FHIROperationError(500, "boom", resource_type=resource_type)
        self.created.append((resource_type, body))
        return {**body, "resourceType": resource_type, "id": f"local-{next(self._ids)}"}


class FakeSession:
    id = 1
    provider = "demo"
    patient_id = "demo-patient-1"
    fhir_server = "/api/fhir/demo"
    access_token = None


PATIENT = {"resourceType": "Patient", "id": "src-1", "name": [{"family": "Smith"}]}


class TestRewritePatientReferences:
    def test_rewrites_patient_fields(self):
        resource = {
            "resourceType": "Coverage",
            "beneficiary": {"reference": "Patient/src-1"},
            "patient": {"reference": "src-1"},
        }

        rewritten = rewrite_patient_references(resource, "local-9")

        assert rewritten["beneficiary"]["reference"] == "Patient/local-9"
        assert rewritten["patient"]["reference"] == "Patient/local-9"

    def test_input_is_not_mutated(self):
        resource = {"subject": {"reference": "Patient/src-1"}}
        original = copy.deepcopy(resource)

        rewrite_patient_references(resource, "local-9")

        assert resource == original

    def test_group_subject_is_kept(self):
        resource = {"subject": {"reference": "Group/g-1"}}

        assert rewrite_patient_references(resource, "local-9") == resource

    def test_missing_reference_is_filled(self):
        resource = {"subject": {"display": "John"}}

        assert rewrite_patient_references(resource, "p")["subject"]["reference"] == "Patient/p"

    @pytest.mark.parametrize(
        "reference",
        [
            "https://fhir.example.org/r4/Patient/src-1",
            "https://fhir.example.org/r4/Patient/src-1/_history/3",
            "urn:uuid:7f1c2a9e-5b7d-4c1e-9a3b-2d6f8e0c4a11",
        ],
    )
    def test_absolute_and_bundle_references_are_rewritten(self, reference):
        resource = {"subject": {"reference": reference}}

        assert rewrite_patient_references(resource, "local-9")["subject"]["reference"] == (
            "Patient/local-9"
        )

    def test_absolute_group_reference_is_kept(self):
        resource = {"subject": {"reference": "https://fhir.example.org/r4/Group/g-1"}}

        assert rewrite_patient_references(resource, "local-9") == resource

    def test_declared_type_wins(self):
        resource = {"subject": {"reference": "urn:uuid:abc", "type": "Group"}}

        assert rewrite_patient_references(resource, "local-9") == resource


class TestMigrateBundle:
    @pytest.mark.asyncio
    async def test_patient_first_then_children(self):
        store = RecordingStore()
        resources = {
            "conditions": [{"id": "c1", "subject": {"reference": "Patient/src-1"}}],
            "observations": [
                {"id": "o1", "subject": {"reference": "Patient/src-1"}},
                {"id": "o2", "subject": {"reference": "Patient/src-1"}},
            ],
        }

        patient_id, counts = await migrate_bundle(store, FakeSession(), PATIENT, resources)

        assert patient_id == "local-1"
        assert counts == {"patients": 1, "conditions": 1, "observations": 2}
        types = [resource_type for resource_type, _ in store.created]
        assert types == ["Patient", "Condition", "Observation", "Observation"]
        for _, body in store.created:
            assert "id" not in body
        assert store.created[1][1]["subject"]["reference"] == "Patient/local-1"

    @pytest.mark.asyncio
    async def test_source_bundle_is_untouched(self):
        resources = {"conditions": [{"id": "c1", "subject": {"reference": "Patient/src-1"}}]}
        snapshot = copy.deepcopy(resources)

        await migrate_bundle(RecordingStore(), FakeSession(), PATIENT, resources)

        assert resources == snapshot
        assert PATIENT["id"] == "src-1"

    @pytest.mark.asyncio
    async def test_requires_patient(self):
        with pytest.raises(FHIRValidationError):
            await migrate_bundle(RecordingStore(), FakeSession(), {"id": "x"}, {})

    @pytest.mark.asyncio
    async def test_failure_aborts_without_rollback(self):
        store = RecordingStore(fail_on="Observation")
        resources = {
            "conditions": [{"subject": {"reference": "Patient/src-1"}}],
            "observations": [{"subject": {"reference": "Patient/src-1"}}],
        }

        with pytest.raises(FHIROperationError):
            await migrate_bundle(store, FakeSession(), PATIENT, resources)

        assert [t for t, _ in store.created] == ["Patient", "Condition"]

    @pytest.mark.asyncio
    async def test_failure_mid_array_returns_no_counts(self):
        """Two of three Observations are stored before the third create fails."""
        store = RecordingStore(fail_on_call=5)
        resources = {
            "conditions": [{"subject": {"reference": "Patient/src-1"}}],
            "observations": [
                {"id": f"o{i}", "subject": {"reference": "Patient/src-1"}} for i in range(3)
            ],
            "medications": [{"subject": {"reference": "Patient/src-1"}}],
        }

        with pytest.raises(FHIROperationError):
            await migrate_bundle(store, FakeSession(), PATIENT, resources)

        assert [t for t, _ in store.created] == [
            "Patient",
            "Condition",
            "Observation",
            "Observation",
        ]

    @pytest.mark.asyncio
    async def test_counts_sum_to_creates_for_every_array(self):
        store = RecordingStore()
        resources = {
            "conditions": [{"subject": {"reference": "Patient/src-1"}}] * 2,
            "observations": [{"subject": {"reference": "Patient/src-1"}}] * 3,
            "medications": [{"subject": {"reference": "Patient/src-1"}}],
            "allergies": [{"patient": {"reference": "Patient/src-1"}}] * 2,
            "immunizations": [{"patient": {"reference": "Patient/src-1"}}],
            "coverages": [{"beneficiary": {"reference": "Patient/src-1"}}],
            "claims": [{"patient": {"reference": "Patient/src-1"}}] * 2,
            "explanationOfBenefits": [{"patient": {"reference": "Patient/src-1"}}],
        }

        _, counts = await migrate_bundle(store, FakeSession(), PATIENT, resources)

        assert sum(counts.values()) == len(store.created) == 14
        assert counts == {
            "patients": 1,
            "conditions": 2,
            "observations": 3,
            "medications": 1,
            "allergies": 2,
            "immunizations": 1,
            "coverages": 1,
            "claims": 2,
            "explanationOfBenefits": 1,
        }
        types = [t for t, _ in store.created]
        assert types[0] == "Patient"
        assert types[-1] == "ExplanationOfBenefit"
        for _, body in store.created[1:]:
            references = [
                body[field]["reference"]
                for field in ("subject", "patient", "beneficiary")
                if field in body
            ]
            assert references == ["Patient/local-1"]

    @pytest.mark.asyncio
    async def test_counts_only(self):
        counts = await migration_service.migrate_provider_data(
            RecordingStore(), FakeSession(), PATIENT, {}
        )

        assert counts == {"patients": 1}


class TestRunSessionMigration:
    @pytest.mark.asyncio
    async def test_demo_session_is_migrated_and_recorded(self, db_session):
        session = await session_service.connect_demo(db_session)
        store = RecordingStore()

        patient_id, counts = await run_session_migration(db_session, session, store)

        assert patient_id == "local-1"
        assert counts["patients"] == 1
        assert counts["conditions"] == 3
        await db_session.refresh(session)
        assert session.migrated is True
        assert session.migration_counts == counts

    @pytest.mark.asyncio
    async def test_unreadable_patient(self, db_session):
        session = await session_service.connect_demo(db_session)

        with patch.object(
            DemoFHIRClient, "get_patient_data", AsyncMock(return_value={"patient": None})
        ):
            with pytest.raises(FHIRValidationError):
                await run_session_migration(db_session, session, RecordingStore())

        await db_session.refresh(session)
        assert session.migrated is False
