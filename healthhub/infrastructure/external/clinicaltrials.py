"""ClinicalTrials.gov v2 adapter (https://clinicaltrials.gov/api/v2/)."""

import logging
from typing import Any

from healthhub.core.config import settings
from healthhub.infrastructure.external.base import ExternalAPIClient
from healthhub.infrastructure.external.result import Degraded, Ok, Result
from healthhub.schemas.external import (
    StudyDetail,
    TrialContact,
    TrialEligibility,
    TrialIntervention,
    TrialLocation,
    TrialSearchResult,
)

logger = logging.getLogger(__name__)

DEFAULT_STATUS = ["RECRUITING"]

STUDY_FIELDS = [
    "NCTId",
    "BriefTitle",
    "OfficialTitle",
    "OverallStatus",
    "Phase",
    "StudyType",
    "Condition",
    "InterventionName",
    "InterventionType",
    "InterventionDescription",
    "LeadSponsorName",
    "CollaboratorName",
    "EnrollmentCount",
    "StartDate",
    "CompletionDate",
    "EligibilityCriteria",
    "MinimumAge",
    "MaximumAge",
    "Sex",
    "HealthyVolunteers",
    "LocationFacility",
    "LocationCity",
    "LocationState",
    "LocationCountry",
    "LocationStatus",
    "CentralContactName",
    "CentralContactPhone",
    "CentralContactEmail",
    "BriefSummary",
    "DetailedDescription",
    "LastUpdateSubmitDate",
]

CONDITION_SEARCH_TERMS: dict[str, list[str]] = {
    "diabetes": ["type 2 diabetes", "diabetes mellitus", "diabetes"],
    "hypertension": ["hypertension", "high blood pressure", "hypertensive"],
    "asthma": ["asthma", "bronchial asthma"],
    "copd": ["chronic obstructive pulmonary disease", "copd"],
    "heart failure": ["heart failure", "congestive heart failure", "cardiac failure"],
    "chronic kidney disease": ["chronic kidney disease", "ckd", "renal insufficiency"],
    "depression": ["depression", "major depressive disorder", "depressive disorder"],
    "anxiety": ["anxiety", "anxiety disorder", "generalized anxiety"],
    "obesity": ["obesity", "overweight"],
    "cancer": ["cancer", "neoplasm", "malignancy"],
}


def map_condition_to_search_terms(condition: str) -> list[str]:
    """Expand a condition display name into synonyms the registry indexes.

    The first key contained in the lower-cased name wins; unknown conditions
    are returned unchanged.
    """
    lower = condition.lower()
    for key, terms in CONDITION_SEARCH_TERMS.items():
        if key in lower:
            return terms
    return [condition]


def transform_study(study: dict[str, Any]) -> StudyDetail:
    protocol = study.get("protocolSection") or {}
    identification = protocol.get("identificationModule") or {}
    status = protocol.get("statusModule") or {}
    description = protocol.get("descriptionModule") or {}
    design = protocol.get("designModule") or {}
    arms = protocol.get("armsInterventionsModule") or {}
    eligibility = protocol.get("eligibilityModule") or {}
    contacts = protocol.get("contactsLocationsModule") or {}
    sponsor = protocol.get("sponsorCollaboratorsModule") or {}

    brief_title = identification.get("briefTitle", "")
    official_title = identification.get("officialTitle") or brief_title

    return StudyDetail(
        nct_id=identification.get("nctId", ""),
        title=official_title,
        brief_title=brief_title,
        official_title=official_title,
        status=status.get("overallStatus", ""),
        phase=", ".join(design.get("phases") or []) or "Not Applicable",
        study_type=design.get("studyType") or "Unknown",
        conditions=(protocol.get("conditionsModule") or {}).get("conditions") or [],
        interventions=[
            TrialIntervention(
                type=i.get("type", ""),
                name=i.get("name", ""),
                description=i.get("description"),
            )
            for i in arms.get("interventions") or []
        ],
        sponsor=(sponsor.get("leadSponsor") or {}).get("name") or "Unknown",
        collaborators=[c.get("name") or "" for c in sponsor.get("collaborators") or []],
        enrollment_count=(design.get("enrollmentInfo") or {}).get("count") or 0,
        start_date=(status.get("startDateStruct") or {}).get("date") or "",
        completion_date=(status.get("completionDateStruct") or {}).get("date") or "",
        eligibility=TrialEligibility(
            criteria=eligibility.get("eligibilityCriteria") or "",
            min_age=eligibility.get("minimumAge") or "N/A",
            max_age=eligibility.get("maximumAge") or "N/A",
            sex=eligibility.get("sex") or "All",
            healthy_volunteers=bool(eligibility.get("healthyVolunteers")),
        ),
        locations=[
            TrialLocation(
                facility=loc.get("facility") or "",
                city=loc.get("city") or "",
                state=loc.get("state") or "",
                country=loc.get("country") or "",
                status=loc.get("status") or "",
            )
            for loc in contacts.get("locations") or []
        ],
        contacts=[
            TrialContact(name=c.get("name") or "", phone=c.get("phone"), email=c.get("email"))
            for c in contacts.get("centralContacts") or []
        ],
        description=description.get("briefSummary")
        or description.get("detailedDescription")
        or "",
        last_updated=status.get("lastUpdateSubmitDate") or "",
    )


class ClinicalTrialsClient(ExternalAPIClient):
    """Search and fetch studies from ClinicalTrials.gov."""

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(
            source="clinicaltrials",
            base_url=base_url or settings.CLINICAL_TRIALS_BASE_URL,
            ttl_seconds=settings.CLINICAL_TRIALS_CACHE_TTL,
            **kwargs,
        )

    async def search_trials(
        self,
        conditions: list[str],
        status: list[str] | None = None,
        phase: list[str] | None = None,
        location: dict[str, Any] | None = None,
        page_size: int = 20,
        page_token: str | None = None,
    ) -> Result[TrialSearchResult]:
        """Search studies matching any of ``conditions``.

        ``phase`` and ``location`` take part in the cache key but are not
        forwarded: the v2 ``studies`` endpoint filters them through the
        advanced query syntax, which this adapter does not build.
        """
        statuses = status or DEFAULT_STATUS
        params = {
            "query.cond": " OR ".join(conditions),
            "filter.overallStatus": ",".join(statuses),
            "pageSize": page_size,
            "fields": ",".join(STUDY_FIELDS),
        }
        if page_token:
            params["pageToken"] = page_token

        result = await self._get_json(
            "/studies",
            params=params,
            cache_prefix="trials",
            cache_params={
                "conditions": conditions,
                "status": statuses,
                "phase": phase,
                "location": location,
                "pageSize": page_size,
                "pageToken": page_token,
            },
        )
        if isinstance(result, Degraded):
            return result

        payload = result.data or {}
        trials = [transform_study(study) for study in payload.get("studies") or []]
        logger.info(
            f"[clinicaltrials] {len(trials)} trials for conditions: {', '.join(conditions)}"
        )
        return Ok(
            TrialSearchResult(
                trials=trials,
                total_count=payload.get("totalCount") or len(trials),
                next_page_token=payload.get("nextPageToken"),
            )
        )

    async def get_trial(self, nct_id: str) -> Result[StudyDetail | None]:
        """Fetch one study by NCT id. ``Ok(None)`` when the registry has no such study."""
        result = await self._get_json(
            f"/studies/{nct_id}",
            params={},
            cache_prefix="trial",
            cache_params={"nctId": nct_id},
            not_found_is_empty=True,
        )
        if isinstance(result, Degraded):
            return result
        if not result.data:
            return Ok(None)
        return Ok(transform_study(result.data))
