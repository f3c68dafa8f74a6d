"""
Copy a provider's resource bundle into the local FHIR store.

The migration is sequential: the Patient first, then every child resource
one ``create`` call at a time, in a fixed resource-type order. Child
resources are deep-copied and their patient references rewritten to the
Patient id minted by the local store before they are created.

There is no rollback and no retry. Any failed ``create`` aborts the run and
propagates, leaving whatever was already created in place. Running the same
migration twice creates duplicates: no source-identity tag is stored on the
copied resources.
"""

import copy
import logging
from typing import Any

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.exceptions import FHIRValidationError
from healthhub.infrastructure.fhir.providers import client_for_session
from healthhub.models.fhir_session import FhirSession
from healthhub.services import session_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Bundle key -> FHIR resource type, in migration order
RESOURCE_ARRAYS: list[tuple[str, str]] = [
    ("conditions", "Condition"),
    ("observations", "Observation"),
    ("medications", "MedicationRequest"),
    ("allergies", "AllergyIntolerance"),
    ("immunizations", "Immunization"),
    ("coverages", "Coverage"),
    ("claims", "Claim"),
    ("explanationOfBenefits", "ExplanationOfBenefit"),
]

# Fields that may point at the patient
PATIENT_REFERENCE_FIELDS = ("subject", "patient", "beneficiary")


def is_patient_reference(value: dict[str, Any]) -> bool:
    """
    Whether a Reference element points at a Patient.

    Accepts relative (``Patient/1``), absolute
    (``https://host/fhir/Patient/1``, optionally with ``_history``) and
    untyped references: a bare id, a ``urn:uuid:``/``urn:oid:`` bundle
    reference, or no reference at all. An explicit ``type`` other than
    Patient always wins.
    """
    declared = value.get("type")
    if declared is not None:
        return declared == "Patient"

    reference = value.get("reference")
    if not reference or reference.startswith(("urn:uuid:", "urn:oid:")):
        return True

    segments = reference.split("/_history/")[0].rstrip("/").split("/")
    if len(segments) == 1:
        return True
    return segments[-2] == "Patient"


def rewrite_patient_references(resource: dict[str, Any], patient_id: str) -> dict[str, Any]:
    """
    Return a deep copy of ``resource`` pointing at ``Patient/<patient_id>``.

    Only references to a Patient are rewritten (see ``is_patient_reference``);
    a ``subject`` pointing at a Group is left untouched. The input is never
    mutated.
    """
    copied = copy.deepcopy(resource)
    for field in PATIENT_REFERENCE_FIELDS:
        value = copied.get(field)
        if isinstance(value, dict) and is_patient_reference(value):
            value["reference"] = f"Patient/{patient_id}"
    return copied


async def migrate_provider_data(
    destination: FHIRClient,
    session: FhirSession,
    patient: dict[str, Any],
    resources: dict[str, list[dict[str, Any]]],
) -> dict[str, int]:
    """
    Create the patient and its resources in the destination store.

    See ``migrate_bundle``, which also returns the new Patient id.
    """
    _, counts = await migrate_bundle(destination, session, patient, resources)
    return counts


async def migrate_bundle(
    destination: FHIRClient,
    session: FhirSession,
    patient: dict[str, Any],
    resources: dict[str, list[dict[str, Any]]],
) -> tuple[str, dict[str, int]]:
    """
    Create the patient and its resources in the destination store.

    Args:
        destination: Local FHIR store client
        session: Session the data was fetched through (used for tracing)
        patient: Patient resource from the provider
        resources: Bundle arrays keyed as in ``RESOURCE_ARRAYS``

    Returns:
        (destination Patient id, counts by bundle key plus ``patients: 1``).
        A type is only counted once all of its creates succeeded.

    Raises:
        FHIRValidationError: If the patient has no resourceType
        FHIRError: Whatever the destination raised; no counts are returned
    """
    with tracer.start_as_current_span("migrate_bundle") as span:
        span.set_attribute("fhir.session_id", session.id)
        span.set_attribute("fhir.provider", session.provider)

        if not isinstance(patient, dict) or patient.get("resourceType") != "Patient":
            raise FHIRValidationError("Migration requires a Patient resource")

        counts: dict[str, int] = {}

        try:
            source_patient = copy.deepcopy(patient)
            source_patient.pop("id", None)
            created_patient = await destination.create("Patient", source_patient)
            new_patient_id = str(created_patient["id"])
            counts["patients"] = 1
            span.set_attribute("fhir.destination_patient_id", new_patient_id)

            for key, resource_type in RESOURCE_ARRAYS:
                items = resources.get(key) or []
                if not items:
                    continue
                for item in items:
                    body = rewrite_patient_references(item, new_patient_id)
                    body.pop("id", None)
                    await destination.create(resource_type, body)
                counts[key] = len(items)
                span.add_event("Resource type migrated", {"type": resource_type, "count": len(items)})
        except Exception as e:
            span.record_exception(e)
            logger.error(f"Migration of FHIR session {session.id} aborted: {e}")
            raise

        total = sum(counts.values())
        span.set_attribute("migration.total", total)
        logger.info(f"Migrated {total} resources from FHIR session {session.id}")
        return new_patient_id, counts


async def run_session_migration(
    db: AsyncSession,
    session: FhirSession,
    destination: FHIRClient,
) -> tuple[str, dict[str, int]]:
    """
    Fetch the session's bundle from its provider, migrate it, record the counts.

    Recording the counts is a separate commit after the creates: a crash in
    between leaves the resources created without an audit record.

    Returns:
        (destination patient id, counts)
    """
    with tracer.start_as_current_span("run_session_migration") as span:
        span.set_attribute("fhir.session_id", session.id)

        source = client_for_session(session)
        try:
            bundle = await source.get_patient_data(session.patient_id)
        finally:
            await source.close()

        patient = bundle.get("patient")
        if not patient:
            raise FHIRValidationError(
                f"Patient {session.patient_id} could not be read from {session.provider}"
            )

        resources = {key: bundle.get(key) or [] for key, _ in RESOURCE_ARRAYS}
        new_patient_id, counts = await migrate_bundle(destination, session, patient, resources)

        await session_service.update_fhir_session_migration(db, session.id, counts)
        return new_patient_id, counts
