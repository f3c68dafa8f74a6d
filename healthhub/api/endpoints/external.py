"""Public health data APIs: ClinicalTrials.gov, openFDA and the NPI Registry.

Search routes never fail on an unreachable upstream: they answer an empty
result with ``degraded`` set. Single-item lookups answer 503 instead, since
an empty answer would read as "does not exist".
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from healthhub.core.dependencies import (
    get_clinical_trials_client,
    get_npi_client,
    get_openfda_client,
)
from healthhub.core.exceptions import NotFoundError, UpstreamUnavailableError
from healthhub.infrastructure.external import (
    ClinicalTrialsClient,
    Degraded,
    NPIRegistryClient,
    OpenFDAClient,
)
from healthhub.infrastructure.external.clinicaltrials import map_condition_to_search_terms
from healthhub.infrastructure.external.npi import SPECIALTY_MAP, normalize_specialty
from healthhub.schemas.external import (
    AdverseEventResponse,
    DrugInfo,
    DrugSearchResponse,
    InteractionCheckRequest,
    InteractionReport,
    Provider,
    ProviderSearchCriteria,
    ProviderSearchResponse,
    SpecialistSearchResponse,
    SpecialtyListResponse,
    StudyDetail,
    TrialSearchResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

VALID_TRIAL_STATUSES = ("RECRUITING", "ACTIVE_NOT_RECRUITING", "ENROLLING_BY_INVITATION")
DEFAULT_TRIAL_STATUS = ["RECRUITING"]


def _split(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# =============================================================================
# Clinical trials
# =============================================================================


@router.get(
    "/clinical-trials",
    response_model=TrialSearchResponse,
    summary="Search clinical trials",
    description=(
        "Comma separated conditions are expanded into common synonyms before "
        "querying ClinicalTrials.gov"
    ),
)
async def search_clinical_trials(
    conditions: str | None = Query(None, description="Comma separated conditions"),
    trial_status: str | None = Query(None, alias="status", description="Comma separated statuses"),
    phase: str | None = Query(None, description="Comma separated phases"),
    page_size: int = Query(20, alias="pageSize", ge=1, le=100),
    page_token: str | None = Query(None, alias="pageToken"),
    client: ClinicalTrialsClient = Depends(get_clinical_trials_client),
) -> TrialSearchResponse:
    requested = _split(conditions)
    if not requested:
        raise _bad_request("conditions parameter is required")

    search_terms: list[str] = []
    for condition in requested:
        for term in map_condition_to_search_terms(condition):
            if term not in search_terms:
                search_terms.append(term)

    statuses = [s for s in _split(trial_status) if s in VALID_TRIAL_STATUSES]
    result = await client.search_trials(
        conditions=search_terms,
        status=statuses or DEFAULT_TRIAL_STATUS,
        phase=_split(phase) or None,
        page_size=page_size,
        page_token=page_token,
    )
    if isinstance(result, Degraded):
        return TrialSearchResponse(
            search_terms=search_terms, degraded=True, degraded_reason=result.reason
        )
    return TrialSearchResponse(**result.data.model_dump(), search_terms=search_terms)


@router.get(
    "/clinical-trials/{nct_id}",
    response_model=StudyDetail,
    summary="Get a clinical trial by NCT id",
)
async def get_clinical_trial(
    nct_id: str,
    request: Request,
    client: ClinicalTrialsClient = Depends(get_clinical_trials_client),
) -> StudyDetail:
    if not nct_id.startswith("NCT"):
        raise _bad_request("Invalid NCT ID format")

    result = await client.get_trial(nct_id)
    if isinstance(result, Degraded):
        raise UpstreamUnavailableError(
            source=result.source, detail=result.reason, instance=request.url.path
        )
    if result.data is None:
        raise NotFoundError(detail="Trial not found", instance=request.url.path)
    return result.data


# =============================================================================
# Drugs
# =============================================================================


@router.get(
    "/drugs/search",
    response_model=DrugSearchResponse,
    summary="Look up drug labels",
    description="Comma separated brand or generic names",
)
async def search_drugs(
    name: str | None = Query(None, description="Comma separated drug names"),
    client: OpenFDAClient = Depends(get_openfda_client),
) -> DrugSearchResponse:
    names = _split(name)
    if not names:
        raise _bad_request("name parameter is required")
    return await client.search_drugs(names)


@router.post(
    "/drugs/interactions",
    response_model=InteractionReport,
    summary="Check drug interactions",
    description=(
        "Heuristic screen over FDA label text. Not a clinical interaction "
        "database; drugs whose label could not be fetched are listed as unavailable"
    ),
)
async def check_drug_interactions(
    data: InteractionCheckRequest,
    client: OpenFDAClient = Depends(get_openfda_client),
) -> InteractionReport:
    return await client.check_drug_interactions(data.drugs)


@router.get(
    "/drugs/{name}/adverse-events",
    response_model=AdverseEventResponse,
    summary="Most reported adverse reactions",
)
async def get_adverse_events(
    name: str,
    limit: int = Query(10, ge=1, le=100),
    client: OpenFDAClient = Depends(get_openfda_client),
) -> AdverseEventResponse:
    result = await client.get_adverse_events(name, limit=limit)
    if isinstance(result, Degraded):
        return AdverseEventResponse(drug_name=name, degraded=True, degraded_reason=result.reason)
    return AdverseEventResponse(drug_name=name, **result.data.model_dump())


@router.get("/drugs/{name}", response_model=DrugInfo, summary="Get one drug label")
async def get_drug(
    name: str,
    request: Request,
    client: OpenFDAClient = Depends(get_openfda_client),
) -> DrugInfo:
    result = await client.get_drug_info(name)
    if isinstance(result, Degraded):
        raise UpstreamUnavailableError(
            source=result.source, detail=result.reason, instance=request.url.path
        )
    if result.data is None:
        raise NotFoundError(detail="Drug not found", instance=request.url.path)
    return result.data


# =============================================================================
# Providers
# =============================================================================


@router.get(
    "/providers/search",
    response_model=ProviderSearchResponse,
    summary="Search the NPI Registry",
    description="At least one filter is required",
)
async def search_providers(
    first_name: str | None = Query(None, alias="firstName"),
    last_name: str | None = Query(None, alias="lastName"),
    organization_name: str | None = Query(None, alias="organizationName"),
    specialty: str | None = Query(None, description="Specialty or lay term"),
    city: str | None = Query(None),
    state: str | None = Query(None, min_length=2, max_length=2),
    postal_code: str | None = Query(None, alias="postalCode"),
    limit: int = Query(20, ge=1, le=200),
    client: NPIRegistryClient = Depends(get_npi_client),
) -> ProviderSearchResponse:
    criteria = ProviderSearchCriteria(
        first_name=first_name,
        last_name=last_name,
        organization_name=organization_name,
        taxonomy_description=normalize_specialty(specialty) if specialty else None,
        city=city,
        state=state,
        postal_code=postal_code,
        limit=limit,
    )
    if not criteria.has_filters():
        raise _bad_request("At least one search parameter is required")

    result = await client.search_providers(criteria)
    if isinstance(result, Degraded):
        return ProviderSearchResponse(degraded=True, degraded_reason=result.reason)
    return ProviderSearchResponse(**result.data.model_dump())


@router.get(
    "/providers/specialists",
    response_model=SpecialistSearchResponse,
    summary="Find active specialists near a location",
)
async def find_specialists(
    specialty: str | None = Query(None),
    city: str | None = Query(None),
    state: str | None = Query(None, min_length=2, max_length=2),
    postal_code: str | None = Query(None, alias="postalCode"),
    limit: int = Query(10, ge=1, le=200),
    client: NPIRegistryClient = Depends(get_npi_client),
) -> SpecialistSearchResponse:
    if not specialty or not specialty.strip():
        raise _bad_request("specialty parameter is required")

    location = {"city": city, "state": state, "postal_code": postal_code}
    result = await client.find_specialists(specialty, location=location, limit=limit)
    if isinstance(result, Degraded):
        return SpecialistSearchResponse(
            specialty=specialty, location=location, degraded=True, degraded_reason=result.reason
        )
    return SpecialistSearchResponse(
        specialty=specialty,
        location=location,
        providers=result.data,
        total_count=len(result.data),
    )


@router.get(
    "/providers/specialties",
    response_model=SpecialtyListResponse,
    summary="Supported specialty terms",
)
async def list_specialties() -> SpecialtyListResponse:
    return SpecialtyListResponse(
        specialties=SPECIALTY_MAP,
        description="Common specialty terms mapped to NPI taxonomy descriptions",
    )


@router.get("/providers/{npi}", response_model=Provider, summary="Get a provider by NPI")
async def get_provider(
    npi: str,
    request: Request,
    client: NPIRegistryClient = Depends(get_npi_client),
) -> Provider:
    if not (len(npi) == 10 and npi.isdigit()):
        raise _bad_request("Invalid NPI format. Must be 10 digits.")

    result = await client.get_provider(npi)
    if isinstance(result, Degraded):
        raise UpstreamUnavailableError(
            source=result.source, detail=result.reason, instance=request.url.path
        )
    if result.data is None:
        raise NotFoundError(detail="Provider not found", instance=request.url.path)
    return result.data
