"""Schemas for third-party health data (ClinicalTrials.gov, OpenFDA, NPI)."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from healthhub.schemas.utils import CamelModel, NonEmptyStr

TrialStatus = Literal["RECRUITING", "ACTIVE_NOT_RECRUITING", "ENROLLING_BY_INVITATION"]

INTERACTION_DISCLAIMER = (
    "Interaction results are generated by keyword matching over FDA label text. "
    "They are not clinically validated and are not a substitute for advice from "
    "a pharmacist or physician."
)


# =============================================================================
# ClinicalTrials.gov
# =============================================================================


class TrialIntervention(CamelModel):
    type: str = ""
    name: str = ""
    description: str | None = None


class TrialEligibility(CamelModel):
    criteria: str = ""
    min_age: str = "N/A"
    max_age: str = "N/A"
    sex: str = "All"
    healthy_volunteers: bool = False


class TrialLocation(CamelModel):
    facility: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    status: str = ""


class TrialContact(CamelModel):
    name: str = ""
    phone: str | None = None
    email: str | None = None


class StudyDetail(CamelModel):
    """One study, flattened from the ClinicalTrials.gov v2 protocol section."""

    nct_id: str
    title: str
    brief_title: str
    official_title: str
    status: str
    phase: str = "Not Applicable"
    study_type: str = "Unknown"
    conditions: list[str] = Field(default_factory=list)
    interventions: list[TrialIntervention] = Field(default_factory=list)
    sponsor: str = "Unknown"
    collaborators: list[str] = Field(default_factory=list)
    enrollment_count: int = 0
    start_date: str = ""
    completion_date: str = ""
    eligibility: TrialEligibility = Field(default_factory=TrialEligibility)
    locations: list[TrialLocation] = Field(default_factory=list)
    contacts: list[TrialContact] = Field(default_factory=list)
    description: str = ""
    last_updated: str = ""


class TrialSearchResult(CamelModel):
    trials: list[StudyDetail] = Field(default_factory=list)
    total_count: int = 0
    next_page_token: str | None = None


class TrialSearchResponse(TrialSearchResult):
    search_terms: list[str] = Field(default_factory=list)
    degraded: bool = False
    degraded_reason: str | None = None


# =============================================================================
# OpenFDA
# =============================================================================


class DrugInfo(CamelModel):
    """Summary of an FDA drug label."""

    brand_name: str
    generic_name: str = ""
    manufacturer: str = "Unknown"
    active_ingredients: list[str] = Field(default_factory=list)
    dosage_form: str = "Unknown"
    route: list[str] = Field(default_factory=lambda: ["Unknown"])
    warnings: list[str] = Field(default_factory=list)
    interactions: list[str] = Field(default_factory=list)
    adverse_reactions: list[str] = Field(default_factory=list)
    contraindications: list[str] = Field(default_factory=list)
    boxed_warning: str | None = None


class DrugSearchResponse(CamelModel):
    drugs: list[DrugInfo] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    degraded: bool = False
    degraded_reason: str | None = None
    unavailable: list[str] = Field(default_factory=list)


Severity = Literal["major", "moderate", "minor"]


class DrugInteraction(CamelModel):
    drug1: str
    drug2: str
    severity: Severity
    description: str
    mechanism: str | None = None
    management: str | None = None


class InteractionReport(CamelModel):
    """Heuristic interaction findings for a medication list.

    ``heuristic`` is always true: findings come from substring matching
    over label text, never from a curated interaction database.
    """

    drugs: list[str]
    interactions: list[DrugInteraction] = Field(default_factory=list)
    interaction_count: int = 0
    has_major_interactions: bool = False
    heuristic: bool = True
    disclaimer: str = INTERACTION_DISCLAIMER
    unavailable: list[str] = Field(default_factory=list)
    degraded: bool = False
    checked_at: datetime | None = None


class InteractionCheckRequest(CamelModel):
    drugs: list[NonEmptyStr] = Field(..., min_length=2, max_length=20)


class AdverseReaction(CamelModel):
    term: str
    count: int


class AdverseEventSummary(CamelModel):
    reactions: list[AdverseReaction] = Field(default_factory=list)
    total_reports: int = 0


class AdverseEventResponse(AdverseEventSummary):
    drug_name: str
    degraded: bool = False
    degraded_reason: str | None = None


# =============================================================================
# NPI Registry
# =============================================================================


class ProviderName(CamelModel):
    first: str | None = None
    last: str | None = None
    middle: str | None = None
    credential: str | None = None
    organization_name: str | None = None


class ProviderSpecialty(CamelModel):
    code: str = ""
    description: str = ""
    is_primary: bool = False
    state: str | None = None
    license_number: str | None = None


class ProviderAddress(CamelModel):
    type: Literal["mailing", "practice"]
    line1: str = ""
    line2: str | None = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    phone: str | None = None
    fax: str | None = None


class ProviderIdentifier(CamelModel):
    type: str | None = None
    identifier: str = ""
    state: str | None = None
    issuer: str | None = None


class Provider(CamelModel):
    npi: str
    type: Literal["individual", "organization"]
    name: ProviderName = Field(default_factory=ProviderName)
    specialties: list[ProviderSpecialty] = Field(default_factory=list)
    addresses: list[ProviderAddress] = Field(default_factory=list)
    identifiers: list[ProviderIdentifier] = Field(default_factory=list)
    enumeration_date: str = ""
    last_updated: str = ""
    status: Literal["active", "deactivated"] = "deactivated"


class ProviderSearchCriteria(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    organization_name: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    taxonomy_description: str | None = None
    limit: int = Field(20, ge=1, le=200)

    def has_filters(self) -> bool:
        return any(self.model_dump(exclude={"limit"}).values())


class ProviderSearchResult(CamelModel):
    providers: list[Provider] = Field(default_factory=list)
    total_count: int = 0


class ProviderSearchResponse(ProviderSearchResult):
    degraded: bool = False
    degraded_reason: str | None = None


class SpecialistSearchResponse(CamelModel):
    specialty: str
    location: dict[str, str | None]
    providers: list[Provider] = Field(default_factory=list)
    total_count: int = 0
    degraded: bool = False
    degraded_reason: str | None = None


class SpecialtyListResponse(CamelModel):
    specialties: dict[str, str]
    description: str
