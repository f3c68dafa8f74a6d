"""Read helpers over loosely-typed FHIR JSON documents."""

from typing import Any


def format_human_name(patient: dict[str, Any] | None) -> str:
    """Return "Given Family" for the first name entry, or "Unknown"."""
    if not patient:
        return "Unknown"
    names = patient.get("name") or []
    if not names:
        return "Unknown"
    name = names[0]
    if name.get("text"):
        return name["text"]
    parts = [*name.get("given", []), name.get("family", "")]
    formatted = " ".join(part for part in parts if part)
    return formatted or "Unknown"


def codeable_concept_text(concept: dict[str, Any] | None, default: str = "Unknown") -> str:
    """Prefer ``text``, then the first coding's display, then its code."""
    if not concept:
        return default
    if concept.get("text"):
        return concept["text"]
    codings = concept.get("coding") or []
    if codings:
        return codings[0].get("display") or codings[0].get("code") or default
    return default


def medication_name(medication_request: dict[str, Any]) -> str:
    if medication_request.get("medicationCodeableConcept"):
        return codeable_concept_text(medication_request["medicationCodeableConcept"])
    reference = medication_request.get("medicationReference") or {}
    return reference.get("display") or "Unknown medication"


def observation_value(observation: dict[str, Any]) -> str:
    """Render an observation value as display text ("140 mmHg", "Positive")."""
    quantity = observation.get("valueQuantity")
    if quantity:
        return f"{quantity.get('value')} {quantity.get('unit', '')}".strip()
    if observation.get("valueString"):
        return observation["valueString"]
    if observation.get("valueCodeableConcept"):
        return codeable_concept_text(observation["valueCodeableConcept"])
    components = observation.get("component") or []
    if components:
        values = [
            f"{c['valueQuantity'].get('value')}"
            for c in components
            if c.get("valueQuantity")
        ]
        unit = next(
            (c["valueQuantity"].get("unit") for c in components if c.get("valueQuantity")), ""
        )
        if values:
            return f"{'/'.join(values)} {unit}".strip()
    return "No value"
