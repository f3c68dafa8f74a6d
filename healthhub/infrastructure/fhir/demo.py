"""In-process FHIR client serving the bundled demo records.

``DemoFHIRClient`` answers the same calls as ``FHIRClient`` so that routes,
chat context gathering and migration run unchanged against the ``demo``
provider. It is read-only: write operations raise ``FHIROperationError``.
"""

import copy
import logging
from datetime import datetime
from typing import Any

from opentelemetry import trace

from healthhub.infrastructure.fhir import demo_data
from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.exceptions import (
    FHIROperationError,
    FHIRResourceNotFoundError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Observation codes that get a synthetic six-month history (weight, BMI)
TREND_CODES = {"29463-7": 0.05, "39156-5": 0.02}
TREND_MONTHS = 6

# Date field used by "_sort=-date" / "_sort=-created", per resource type
SORT_FIELDS = {
    "Observation": "effectiveDateTime",
    "MedicationRequest": "authoredOn",
    "Immunization": "occurrenceDateTime",
    "Claim": "created",
    "ExplanationOfBenefit": "created",
    "Appointment": "start",
}

# Fields holding the patient reference, per resource type
PATIENT_FIELDS = ("subject", "patient", "beneficiary")


def _months_before(value: str, months: int) -> str:
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    return moment.replace(year=year, month=month, day=min(moment.day, 28)).isoformat()


def _with_trend_history(observations: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Append deterministic monthly history for trend-friendly observations."""
    history = []
    for observation in observations:
        codes = {c.get("code") for c in observation.get("code", {}).get("coding", [])}
        variance = next((TREND_CODES[c] for c in codes if c in TREND_CODES), None)
        if variance is None or "valueQuantity" not in observation:
            continue
        base_value = observation["valueQuantity"]["value"]
        for i in range(1, TREND_MONTHS + 1):
            point = copy.deepcopy(observation)
            # Alternate above/below the latest value, drifting further back in time
            factor = 1 + variance * (i / TREND_MONTHS) * (1 if i % 2 else -0.5)
            point["id"] = f"{observation['id']}-hist-{i}"
            point["effectiveDateTime"] = _months_before(observation["effectiveDateTime"], i)
            point["issued"] = point["effectiveDateTime"]
            point["valueQuantity"]["value"] = round(base_value * factor, 1)
            history.append(point)
    return observations + history


def _references_patient(resource: dict[str, Any], patient_id: str) -> bool:
    for field in PATIENT_FIELDS:
        reference = resource.get(field, {}).get("reference", "")
        if reference.endswith(f"/{patient_id}"):
            return True
    for participant in resource.get("participant", []):
        if participant.get("actor", {}).get("reference", "").endswith(f"/{patient_id}"):
            return True
    return False


def _matches_name(resource: dict[str, Any], query: str) -> bool:
    query = query.lower()
    name = resource.get("name")
    if isinstance(name, str):
        return query in name.lower()
    for human_name in name or []:
        candidates = [human_name.get("text", ""), human_name.get("family", "")]
        candidates.extend(human_name.get("given", []))
        if any(query in candidate.lower() for candidate in candidates):
            return True
    return False


class DemoFHIRClient(FHIRClient):
    """FHIR client over the in-memory demo dataset."""

    def __init__(self, base_url: str = "/api/fhir/demo"):
        super().__init__(base_url=base_url)
        self.resources = demo_data.RESOURCES_BY_TYPE

    async def get(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        with tracer.start_as_current_span(f"demo_fhir_read_{resource_type}") as span:
            span.set_attribute("fhir.resource_id", resource_id)
            for resource in self.resources.get(resource_type, []):
                if resource["id"] == resource_id:
                    return copy.deepcopy(resource)
            logger.error(f"Demo FHIR read {resource_type}/{resource_id}: not found")
            raise FHIRResourceNotFoundError(resource_type, resource_id)

    async def search(
        self,
        resource_type: str,
        params: dict[str, str] | None = None,
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        with tracer.start_as_current_span(f"demo_fhir_search_{resource_type}") as span:
            params = params or {}
            results = list(self.resources.get(resource_type, []))

            patient_id = params.get("patient") or params.get("beneficiary")
            if patient_id:
                results = [r for r in results if _references_patient(r, patient_id)]
            if "status" in params:
                results = [r for r in results if r.get("status") == params["status"]]
            if "name" in params:
                results = [r for r in results if _matches_name(r, params["name"])]
            if "practitioner" in params:
                results = [
                    r
                    for r in results
                    if r.get("practitioner", {}).get("reference", "").endswith(params["practitioner"])
                ]

            if resource_type == "Observation":
                results = _with_trend_history(results)

            sort = params.get("_sort", "")
            if sort.startswith("-") and resource_type in SORT_FIELDS:
                field = SORT_FIELDS[resource_type]
                results.sort(key=lambda r: r.get(field, ""), reverse=True)

            if "_count" in params:
                results = results[: int(params["_count"])]

            span.set_attribute("fhir.search_total", len(results))
            return copy.deepcopy(results)

    async def create(self, resource_type: str, body: dict[str, Any]) -> dict[str, Any]:
        raise FHIROperationError(405, "Demo FHIR server is read-only", resource_type=resource_type)

    async def update(
        self, resource_type: str, resource_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        raise FHIROperationError(405, "Demo FHIR server is read-only", resource_type=resource_type)

    async def delete(self, resource_type: str, resource_id: str) -> None:
        raise FHIROperationError(405, "Demo FHIR server is read-only", resource_type=resource_type)

    async def close(self) -> None:
        return None
