"""Mapper from family member profiles to FHIR Patient resources.

Members without a linked provider session still get a minimal Patient so
care gaps, narratives and intake forms can work from the profile alone.
"""

import json
from typing import Any

from fhir.resources.humanname import HumanName
from fhir.resources.identifier import Identifier
from fhir.resources.patient import Patient as FHIRPatient

from healthhub.infrastructure.fhir.identifiers import (
    FAMILY_MEMBER_SYSTEM,
    RELATIONSHIP_EXTENSION_URL,
    ROLE_CODE_SYSTEM,
)
from healthhub.models.family import FamilyMember

FHIR_GENDERS = ("male", "female", "other", "unknown")

GENDER_ALIASES = {
    "m": "male",
    "man": "male",
    "boy": "male",
    "f": "female",
    "woman": "female",
    "girl": "female",
}

RELATIONSHIP_ROLE_CODES = {
    "self": ("ONESELF", "self"),
    "spouse": ("SPS", "spouse"),
    "partner": ("DOMPART", "domestic partner"),
    "child": ("CHILD", "child"),
    "parent": ("PRN", "parent"),
    "sibling": ("SIB", "sibling"),
    "grandparent": ("GRPRN", "grandparent"),
    "other": ("FAMMEMB", "family member"),
}


def _fhir_gender(gender: str | None) -> str:
    if not gender:
        return "unknown"
    value = gender.strip().lower()
    value = GENDER_ALIASES.get(value, value)
    return value if value in FHIR_GENDERS else "other"


def _build_name(full_name: str) -> HumanName:
    parts = full_name.split()
    if len(parts) < 2:
        return HumanName(use="usual", text=full_name, given=parts or None)
    return HumanName(use="usual", text=full_name, family=parts[-1], given=parts[:-1])


def _build_relationship_extension(relationship: str) -> dict[str, Any]:
    code, display = RELATIONSHIP_ROLE_CODES.get(relationship, RELATIONSHIP_ROLE_CODES["other"])
    return {
        "url": RELATIONSHIP_EXTENSION_URL,
        "valueCodeableConcept": {
            "coding": [{"system": ROLE_CODE_SYSTEM, "code": code, "display": display}],
            "text": relationship,
        },
    }


class FamilyMemberMapper:
    """Maps a FamilyMember row to a FHIR Patient resource."""

    @staticmethod
    def to_fhir(member: FamilyMember) -> FHIRPatient:
        """Convert a family member profile to a FHIR Patient.

        Args:
            member: Family member row

        Returns:
            FHIR Patient carrying the member identifier, name, gender,
            birth date and relationship to the account holder
        """
        patient_data: dict[str, Any] = {
            "resourceType": "Patient",
            "identifier": [
                Identifier(system=FAMILY_MEMBER_SYSTEM, value=str(member.id), use="secondary")
            ],
            "active": True,
            "name": [_build_name(member.name)],
            "gender": _fhir_gender(member.gender),
            "birthDate": member.date_of_birth.isoformat() if member.date_of_birth else None,
            "extension": [_build_relationship_extension(member.relationship)],
        }
        return FHIRPatient.model_validate(patient_data)

    @staticmethod
    def to_resource(member: FamilyMember) -> dict[str, Any]:
        """Plain JSON form of ``to_fhir``, shaped like a server response."""
        fhir_patient = FamilyMemberMapper.to_fhir(member)
        return json.loads(fhir_patient.model_dump_json(exclude_none=True))
