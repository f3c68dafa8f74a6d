"""
Migration into a real FHIR store.

Uses a HAPI FHIR server on port 8090. Only the demo resource types without
references to practitioners or organizations are migrated, since the store
enforces referential integrity on write.
"""

import pytest

from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.demo import DemoFHIRClient
from healthhub.infrastructure.fhir.exceptions import FHIRResourceNotFoundError
from healthhub.models.fhir_session import FhirSession
from healthhub.services import migration_service

SELF_CONTAINED = ("conditions", "observations", "allergies", "immunizations")


@pytest.fixture
async def demo_bundle():
    return await DemoFHIRClient().get_patient_data("demo-patient-1")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_store_is_reachable(fhir_store: FHIRClient):
    assert await fhir_store.search("Patient", {"_count": "1"}) is not None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_migrated_record_points_at_new_patient(fhir_store: FHIRClient, demo_bundle):
    session = FhirSession(id=1, provider="demo", patient_id="demo-patient-1")
    resources = {key: demo_bundle[key] for key in SELF_CONTAINED}

    patient_id, counts = await migration_service.migrate_bundle(
        fhir_store, session, demo_bundle["patient"], resources
    )

    assert patient_id != "demo-patient-1"
    assert counts == {"patients": 1, "conditions": 3, "observations": len(demo_bundle["observations"]),
                      "allergies": len(demo_bundle["allergies"]),
                      "immunizations": len(demo_bundle["immunizations"])}

    patient = await fhir_store.get_patient(patient_id)
    assert patient["name"][0]["family"] == "Smith"
    conditions = await fhir_store.get_conditions(patient_id)
    assert len(conditions) == 3
    assert {c["subject"]["reference"] for c in conditions} == {f"Patient/{patient_id}"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_resource(fhir_store: FHIRClient):
    with pytest.raises(FHIRResourceNotFoundError):
        await fhir_store.get("Patient", "does-not-exist-healthhub")
