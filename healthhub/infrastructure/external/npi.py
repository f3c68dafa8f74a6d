"""NPPES NPI Registry adapter (https://npiregistry.cms.hhs.gov/api-page)."""

import logging
from typing import Any

from healthhub.core.config import settings
from healthhub.infrastructure.external.base import ExternalAPIClient
from healthhub.infrastructure.external.result import Degraded, Ok, Result
from healthhub.schemas.external import (
    Provider,
    ProviderAddress,
    ProviderIdentifier,
    ProviderName,
    ProviderSearchCriteria,
    ProviderSearchResult,
    ProviderSpecialty,
)

logger = logging.getLogger(__name__)

API_VERSION = "2.1"

# Lay terms mapped to NPI taxonomy descriptions
SPECIALTY_MAP: dict[str, str] = {
    "primary care": "Family Medicine",
    "pcp": "Family Medicine",
    "family doctor": "Family Medicine",
    "internist": "Internal Medicine",
    "cardiologist": "Cardiovascular Disease",
    "heart doctor": "Cardiovascular Disease",
    "dermatologist": "Dermatology",
    "skin doctor": "Dermatology",
    "endocrinologist": "Endocrinology, Diabetes & Metabolism",
    "diabetes doctor": "Endocrinology, Diabetes & Metabolism",
    "gastroenterologist": "Gastroenterology",
    "gi doctor": "Gastroenterology",
    "neurologist": "Neurology",
    "ophthalmologist": "Ophthalmology",
    "eye doctor": "Ophthalmology",
    "orthopedist": "Orthopaedic Surgery",
    "bone doctor": "Orthopaedic Surgery",
    "pediatrician": "Pediatrics",
    "children doctor": "Pediatrics",
    "psychiatrist": "Psychiatry & Neurology",
    "mental health": "Psychiatry & Neurology",
    "pulmonologist": "Pulmonary Disease",
    "lung doctor": "Pulmonary Disease",
    "rheumatologist": "Rheumatology",
    "urologist": "Urology",
    "oncologist": "Hematology & Oncology",
    "cancer doctor": "Hematology & Oncology",
    "nephrologist": "Nephrology",
    "kidney doctor": "Nephrology",
}

_CRITERIA_FIELDS = (
    "first_name",
    "last_name",
    "organization_name",
    "city",
    "state",
    "postal_code",
    "taxonomy_description",
)


def normalize_specialty(term: str) -> str:
    return SPECIALTY_MAP.get(term.lower(), term)


def transform_provider(result: dict[str, Any]) -> Provider:
    basic = result.get("basic") or {}
    return Provider(
        npi=str(result.get("number", "")),
        type="individual" if result.get("enumeration_type") == "NPI-1" else "organization",
        name=ProviderName(
            first=basic.get("first_name"),
            last=basic.get("last_name"),
            middle=basic.get("middle_name"),
            credential=basic.get("credential"),
            organization_name=basic.get("organization_name"),
        ),
        specialties=[
            ProviderSpecialty(
                code=t.get("code") or "",
                description=t.get("desc") or "",
                is_primary=bool(t.get("primary")),
                state=t.get("state"),
                license_number=t.get("license"),
            )
            for t in result.get("taxonomies") or []
        ],
        addresses=[
            ProviderAddress(
                type="mailing" if a.get("address_purpose") == "MAILING" else "practice",
                line1=a.get("address_1") or "",
                line2=a.get("address_2"),
                city=a.get("city") or "",
                state=a.get("state") or "",
                postal_code=a.get("postal_code") or "",
                country=a.get("country_code") or "",
                phone=a.get("telephone_number"),
                fax=a.get("fax_number"),
            )
            for a in result.get("addresses") or []
        ],
        identifiers=[
            ProviderIdentifier(
                type=i.get("desc"),
                identifier=i.get("identifier") or "",
                state=i.get("state"),
                issuer=i.get("issuer"),
            )
            for i in result.get("identifiers") or []
        ],
        enumeration_date=basic.get("enumeration_date") or "",
        last_updated=basic.get("last_updated") or "",
        status="active" if basic.get("status") == "A" else "deactivated",
    )


class NPIRegistryClient(ExternalAPIClient):
    """Provider lookups against the NPPES NPI Registry."""

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(
            source="npi",
            base_url=base_url or settings.NPI_REGISTRY_URL,
            ttl_seconds=settings.NPI_CACHE_TTL,
            **kwargs,
        )

    async def search_providers(
        self, criteria: ProviderSearchCriteria
    ) -> Result[ProviderSearchResult]:
        params: dict[str, Any] = {"version": API_VERSION, "limit": criteria.limit}
        for field in _CRITERIA_FIELDS:
            value = getattr(criteria, field)
            if value:
                params[field] = value

        result = await self._get_json(
            "",
            params=params,
            cache_prefix="providers",
            cache_params=criteria.model_dump(),
        )
        if isinstance(result, Degraded):
            return result

        payload = result.data or {}
        providers = [transform_provider(r) for r in payload.get("results") or []]
        logger.info(f"[npi] Found {len(providers)} providers")
        return Ok(
            ProviderSearchResult(
                providers=providers,
                total_count=payload.get("result_count") or len(providers),
            )
        )

    async def get_provider(self, npi: str) -> Result[Provider | None]:
        result = await self._get_json(
            "",
            params={"version": API_VERSION, "number": npi},
            cache_prefix="npi",
            cache_params={"npi": npi},
        )
        if isinstance(result, Degraded):
            return result

        results = (result.data or {}).get("results") or []
        if not results:
            return Ok(None)
        return Ok(transform_provider(results[0]))

    async def find_specialists(
        self,
        specialty: str,
        location: dict[str, str | None] | None = None,
        limit: int = 10,
    ) -> Result[list[Provider]]:
        """Active providers of a specialty that have a practice address.

        ``specialty`` may be a lay term ("heart doctor"); it is normalized
        through ``SPECIALTY_MAP`` before querying.
        """
        location = location or {}
        result = await self.search_providers(
            ProviderSearchCriteria(
                taxonomy_description=normalize_specialty(specialty),
                city=location.get("city"),
                state=location.get("state"),
                postal_code=location.get("postal_code"),
                limit=limit,
            )
        )
        if isinstance(result, Degraded):
            return result

        return Ok(
            [
                p
                for p in result.data.providers
                if p.status == "active" and any(a.type == "practice" for a in p.addresses)
            ]
        )
