"""OpenFDA drug label and adverse event adapter.

Interaction checking is a keyword heuristic over free-text label sections.
Reports are always flagged ``heuristic=True`` and carry a disclaimer.
"""

import logging
import re
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

from healthhub.core.config import settings
from healthhub.infrastructure.external.base import ExternalAPIClient
from healthhub.infrastructure.external.result import Degraded, Ok, Result
from healthhub.schemas.external import (
    AdverseEventSummary,
    AdverseReaction,
    DrugInfo,
    DrugInteraction,
    DrugSearchResponse,
    InteractionReport,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SEVERITY_WINDOW = 100

MAJOR_KEYWORDS = (
    "contraindicated",
    "do not use",
    "avoid",
    "serious",
    "fatal",
    "life-threatening",
)
MODERATE_KEYWORDS = ("caution", "monitor", "may increase", "may decrease")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def determine_severity(text: str, drug: str) -> str:
    """Classify an interaction from the label text around a drug mention.

    Looks at ``SEVERITY_WINDOW`` characters on each side of the index of
    the first mention of ``drug``. A drug that is not mentioned at all is ``moderate``.
    """
    lower_text = text.lower()
    index = lower_text.find(drug.lower())
    if index == -1:
        return "moderate"

    context = lower_text[max(0, index - SEVERITY_WINDOW) : index + SEVERITY_WINDOW]

    if any(keyword in context for keyword in MAJOR_KEYWORDS):
        return "major"
    if any(keyword in context for keyword in MODERATE_KEYWORDS):
        return "moderate"
    return "minor"


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def extract_interaction_description(text: str, drug: str) -> str:
    drug_lower = drug.lower()
    for sentence in _sentences(text):
        if drug_lower in sentence.lower():
            return sentence[:300]
    return f"Potential interaction with {drug} - consult healthcare provider"


def extract_mechanism(text: str, drug: str) -> str | None:
    lower_text = text.lower()
    if drug.lower() not in lower_text:
        return None
    if not any(word in lower_text for word in ("mechanism", "cyp", "enzyme")):
        return None
    for sentence in _sentences(text):
        lower = sentence.lower()
        if "cyp" in lower or "mechanism" in lower:
            return sentence[:200]
    return None


def extract_management(text: str, drug: str) -> str | None:
    lower_text = text.lower()
    if drug.lower() not in lower_text:
        return None
    if not any(word in lower_text for word in ("monitor", "adjust", "avoid")):
        return None
    for sentence in _sentences(text):
        lower = sentence.lower()
        if "monitor" in lower or "adjust" in lower or "recommend" in lower:
            return sentence[:200]
    return None


def _label_to_drug_info(label: dict[str, Any], name: str) -> DrugInfo:
    openfda = label.get("openfda") or {}
    warnings = label.get("warnings") or label.get("warnings_and_cautions") or []
    boxed = label.get("boxed_warning") or []
    return DrugInfo(
        brand_name=(openfda.get("brand_name") or [name])[0],
        generic_name=(openfda.get("generic_name") or [""])[0],
        manufacturer=(openfda.get("manufacturer_name") or ["Unknown"])[0],
        active_ingredients=openfda.get("substance_name") or [],
        dosage_form=(openfda.get("dosage_form") or ["Unknown"])[0],
        route=openfda.get("route") or ["Unknown"],
        warnings=warnings,
        interactions=label.get("drug_interactions") or [],
        adverse_reactions=label.get("adverse_reactions") or [],
        contraindications=label.get("contraindications") or [],
        boxed_warning=boxed[0] if boxed else None,
    )


class OpenFDAClient(ExternalAPIClient):
    """Client for the openFDA drug endpoints (label.json, event.json)."""

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(
            source="openfda",
            base_url=base_url or settings.OPENFDA_BASE_URL,
            ttl_seconds=settings.DRUG_CACHE_TTL,
            **kwargs,
        )

    async def get_drug_info(self, name: str) -> Result[DrugInfo | None]:
        """Look up the first label whose brand or generic name matches.

        Returns ``Ok(None)`` when openFDA has no label for the name.
        """
        result = await self._get_json(
            "/label.json",
            params={
                "search": f'openfda.brand_name:"{name}" OR openfda.generic_name:"{name}"',
                "limit": 1,
            },
            cache_prefix="drug",
            cache_params={"name": name.lower()},
            not_found_is_empty=True,
        )
        if isinstance(result, Degraded):
            return result

        labels = (result.data or {}).get("results") or []
        if not labels:
            return Ok(None)
        return Ok(_label_to_drug_info(labels[0], name))

    async def search_drugs(self, names: list[str]) -> DrugSearchResponse:
        """Look up several drugs, keeping track of misses and degraded lookups."""
        response = DrugSearchResponse()
        for name in names:
            result = await self.get_drug_info(name)
            if isinstance(result, Degraded):
                response.unavailable.append(name)
                response.degraded = True
                response.degraded_reason = result.reason
            elif result.data is None:
                response.not_found.append(name)
            else:
                response.drugs.append(result.data)
        return response

    async def check_drug_interactions(self, names: list[str]) -> InteractionReport:
        """Compare every pair (i < j) of drugs using label text of the first.

        A pair matches when the second drug's name, or its generic name,
        appears in the first drug's interaction section. A boxed warning that
        mentions the second drug adds a ``major`` finding unless that pair
        already matched.
        """
        with tracer.start_as_current_span("check_drug_interactions") as span:
            span.set_attribute("drugs.count", len(names))

            infos: dict[int, DrugInfo | None] = {}
            unavailable: list[str] = []
            for index, name in enumerate(names):
                result = await self.get_drug_info(name)
                if isinstance(result, Degraded):
                    unavailable.append(name)
                    infos[index] = None
                else:
                    infos[index] = result.data

            interactions: list[DrugInteraction] = []
            for i in range(len(names)):
                drug1_info = infos[i]
                if drug1_info is None:
                    continue

                label_text = " ".join(drug1_info.interactions)
                interaction_text = label_text.lower()

                for j in range(i + 1, len(names)):
                    drug2 = names[j]
                    drug2_lower = drug2.lower()
                    drug2_info = infos[j]

                    generic = drug2_info.generic_name.lower() if drug2_info else ""
                    if drug2_lower in interaction_text or (generic and generic in interaction_text):
                        interactions.append(
                            DrugInteraction(
                                drug1=drug1_info.brand_name,
                                drug2=drug2,
                                severity=determine_severity(interaction_text, drug2),
                                description=extract_interaction_description(label_text, drug2),
                                mechanism=extract_mechanism(label_text, drug2),
                                management=extract_management(label_text, drug2),
                            )
                        )

                    boxed = drug1_info.boxed_warning
                    if boxed and drug2_lower in boxed.lower():
                        already_reported = any(
                            x.drug1 == drug1_info.brand_name and x.drug2 == drug2
                            for x in interactions
                        )
                        if not already_reported:
                            interactions.append(
                                DrugInteraction(
                                    drug1=drug1_info.brand_name,
                                    drug2=drug2,
                                    severity="major",
                                    description=f"Boxed warning interaction: {boxed[:200]}...",
                                )
                            )

            span.set_attribute("interactions.count", len(interactions))
            if unavailable:
                span.add_event("Drug lookups degraded", {"drugs": ",".join(unavailable)})
                logger.warning(f"Interaction check ran without labels for: {unavailable}")

            return InteractionReport(
                drugs=names,
                interactions=interactions,
                interaction_count=len(interactions),
                has_major_interactions=any(x.severity == "major" for x in interactions),
                unavailable=unavailable,
                degraded=bool(unavailable),
                checked_at=datetime.now(UTC),
            )

    async def get_adverse_events(
        self, name: str, limit: int = 10
    ) -> Result[AdverseEventSummary]:
        """Most reported reactions (MedDRA preferred terms) for a drug."""
        result = await self._get_json(
            "/event.json",
            params={
                "search": f'patient.drug.medicinalproduct:"{name}"',
                "count": "patient.reaction.reactionmeddrapt.exact",
                "limit": limit,
            },
            cache_prefix="adverse",
            cache_params={"name": name.lower(), "limit": limit},
            not_found_is_empty=True,
        )
        if isinstance(result, Degraded):
            return result

        payload = result.data or {}
        reactions = [
            AdverseReaction(term=item.get("term", ""), count=item.get("count", 0))
            for item in payload.get("results") or []
        ]
        total = ((payload.get("meta") or {}).get("results") or {}).get("total") or 0
        return Ok(AdverseEventSummary(reactions=reactions, total_reports=total))
