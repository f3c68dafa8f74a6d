"""
Plain-language health narratives for family members.

A narrative is written by the OpenAI chat completions API from the member's
FHIR records and care gaps. Without an API key, or when the API fails, a
deterministic template narrative built from the same data is returned.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from opentelemetry import trace

from healthhub.core.config import settings
from healthhub.core.database import utcnow
from healthhub.infrastructure.fhir.helpers import (
    codeable_concept_text,
    format_human_name,
    medication_name,
    observation_value,
)
from healthhub.infrastructure.llm import complete_chat, get_openai_client
from healthhub.models.family import FamilyMember
from healthhub.schemas.care_gaps import CareGap
from healthhub.services.care_gaps_service import age_in_years, evaluate_care_gaps, parse_fhir_date

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NARRATIVE_TEMPERATURE = 0.7
NARRATIVE_MAX_TOKENS = 1000
DEMO_MODEL = "demo"
EMPTY_NARRATIVE = "Unable to generate narrative."

SYSTEM_PROMPT = (
    "You are a health analyst who creates clear, compassionate health narratives for families."
)

TITLES = {
    "overview": "Health Overview for {name}",
    "condition_focus": "Condition Summary for {name}",
    "preventive": "Preventive Care Status for {name}",
    "growth": "Health Trends for {name}",
    "medication": "Medication Review for {name}",
}

INSTRUCTIONS = {
    "overview": """Generate a comprehensive health summary narrative that:
1. Opens with a brief overview of the patient's current health status
2. Highlights any concerning patterns or trends
3. Lists the top 3-5 priority action items
4. Provides context and meaning for any abnormal values
5. Ends with encouraging notes on what's going well

Write in a warm, professional tone suitable for a family member managing health.
DO NOT use medical jargon without explanation.""",
    "condition_focus": """Generate a condition-focused narrative that:
1. Summarizes each active medical condition
2. Explains what each condition means in plain language
3. Describes how the conditions may interact with each other
4. Connects conditions to current medications
5. Identifies any monitoring or follow-up needed

Write for someone who wants to understand their diagnoses better.""",
    "preventive": """Generate a preventive care narrative that:
1. Lists all care gaps (missing screenings, vaccines, etc.)
2. Explains why each preventive measure is important
3. Prioritizes items by urgency and health impact
4. Suggests a timeline for addressing each gap
5. Notes any preventive care that has been completed recently

Focus on actionable next steps the patient can take.""",
    "growth": """Generate a growth and development narrative that:
1. Reviews recent vital signs and measurements
2. Identifies trends over time (improving, stable, concerning)
3. Puts measurements in context (percentiles for children, normal ranges for adults)
4. Highlights any values that need attention
5. Celebrates positive health milestones

Suitable for tracking health progress over time.""",
    "medication": """Generate a medication management narrative that:
1. Lists all current medications with their purposes
2. Notes any potential interactions to watch for
3. Identifies medications that may need refills soon
4. Connects medications to conditions they treat
5. Highlights any allergies that affect medication choices

Focus on helping the patient understand and manage their medications.""",
}

GUIDELINES = """IMPORTANT GUIDELINES:
- Write 3-4 paragraphs maximum
- Use plain language, not medical jargon
- Always explain what numbers/values mean
- Be empathetic but not alarmist
- Focus on actionable insights
- Never make up information not in the provided data
- If data is limited, acknowledge that gracefully"""


@dataclass
class NarrativeContext:
    """The member's records a narrative is written from."""

    patient: dict[str, Any] | None = None
    conditions: list[dict[str, Any]] = field(default_factory=list)
    observations: list[dict[str, Any]] = field(default_factory=list)
    medications: list[dict[str, Any]] = field(default_factory=list)
    allergies: list[dict[str, Any]] = field(default_factory=list)
    immunizations: list[dict[str, Any]] = field(default_factory=list)
    care_gaps: list[CareGap] = field(default_factory=list)

    @classmethod
    def from_patient_data(cls, patient_data: dict[str, Any], today: date | None = None):
        patient = patient_data.get("patient")
        context = cls(
            patient=patient,
            conditions=patient_data.get("conditions") or [],
            observations=patient_data.get("observations") or [],
            medications=patient_data.get("medications") or [],
            allergies=patient_data.get("allergies") or [],
            immunizations=patient_data.get("immunizations") or [],
        )
        if patient:
            context.care_gaps = evaluate_care_gaps(
                patient,
                context.conditions,
                context.observations,
                context.immunizations,
                today=today,
            )
        return context

    @property
    def due_gaps(self) -> list[CareGap]:
        return [gap for gap in self.care_gaps if gap.status == "due"]


@dataclass
class GeneratedNarrative:
    title: str
    content: str
    source_data: dict[str, Any]
    ai_model: str


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    return f"{count} {singular if count == 1 else plural or singular + 's'}"


def dated_observations(observations: list[dict[str, Any]], limit: int = 10) -> list[dict[str, Any]]:
    """Most recent dated observations first; undated ones are left out."""
    dated = [o for o in observations if o.get("effectiveDateTime")]
    return sorted(dated, key=lambda o: o["effectiveDateTime"], reverse=True)[:limit]


def narrative_title(narrative_type: str, name: str) -> str:
    return TITLES.get(narrative_type, TITLES["overview"]).format(name=name)


def source_data(context: NarrativeContext) -> dict[str, Any]:
    return {
        "conditionCount": len(context.conditions),
        "observationCount": len(context.observations),
        "medicationCount": len(context.medications),
        "careGapCount": len(context.due_gaps),
        "generatedAt": utcnow().isoformat(),
    }


def build_narrative_prompt(
    context: NarrativeContext, narrative_type: str, member_name: str, age: int | None
) -> str:
    age_text = f"{age} years old" if age is not None else "age unknown"
    if context.patient:
        name = format_human_name(context.patient)
        if name == "Unknown":
            name = member_name
        gender = context.patient.get("gender") or "gender not specified"
        patient_info = f"{name}, {age_text}, {gender}"
    else:
        patient_info = f"{member_name}, {age_text}"

    conditions = ", ".join(
        codeable_concept_text(c.get("code"), "Unknown condition") for c in context.conditions
    )
    medications = ", ".join(medication_name(m) for m in context.medications)
    allergies = ", ".join(
        codeable_concept_text(a.get("code"), "Unknown allergy") for a in context.allergies
    )
    observations = "\n".join(
        f"{codeable_concept_text(o.get('code'))}: {observation_value(o)}"
        for o in dated_observations(context.observations)
    )
    care_gaps = "\n".join(
        f"{gap.title} (Due: {gap.due_date.isoformat() if gap.due_date else 'Soon'})"
        for gap in context.due_gaps
    )

    return f"""You are a health analyst creating a consumable health narrative for a family health management app.

Patient: {patient_info}

HEALTH DATA SUMMARY:
- Active Conditions: {len(context.conditions)}
- Recent Observations: {len(context.observations)}
- Current Medications: {len(context.medications)}
- Known Allergies: {len(context.allergies)}
- Immunizations: {len(context.immunizations)}
- Care Gaps Identified: {len(context.due_gaps)}

DETAILED DATA:

Conditions: {conditions or 'None recorded'}

Medications: {medications or 'None recorded'}

Allergies: {allergies or 'None recorded'}

Recent Observations:
{observations or 'None recorded'}

Care Gaps (Overdue/Due):
{care_gaps or 'None identified'}

{INSTRUCTIONS.get(narrative_type, INSTRUCTIONS['overview'])}

{GUIDELINES}
"""


def demo_narrative_content(member_name: str, narrative_type: str, context: NarrativeContext) -> str:
    """Template narrative used when no model is available."""
    due = context.due_gaps

    if narrative_type == "condition_focus":
        conditions = "\n".join(
            f"- {codeable_concept_text(c.get('code'), 'Unspecified condition')}"
            for c in context.conditions
        )
        return f"""**Active Conditions**

{conditions or 'No active conditions are currently recorded.'}

**Understanding Your Conditions**

Each condition listed above represents a health matter that your healthcare team is monitoring. Regular follow-ups and medication adherence (when prescribed) are key to managing these effectively.

*Connect your health records for detailed AI-powered condition analysis.*"""

    if narrative_type == "preventive":
        if due:
            status = "The following preventive care items need attention:\n\n" + "\n".join(
                f"- **{gap.title}**: {gap.recommended_action}" for gap in due
            )
        else:
            status = "All preventive care screenings and vaccinations appear to be current."
        return f"""**Preventive Care Status**

{status}

**Why Preventive Care Matters**

Staying up to date with screenings and vaccinations helps catch potential health issues early when they're most treatable. It's one of the most important investments you can make in your health.

*Connect your health records for personalized preventive care recommendations.*"""

    if narrative_type == "growth":
        metrics = "\n".join(
            f"- **{codeable_concept_text(o.get('code'), 'Measurement')}**: {observation_value(o)}"
            for o in dated_observations(context.observations, limit=5)
        )
        return f"""**Health Trends**

Based on {_plural(len(context.observations), 'recorded observation')}, here's a snapshot of recent health metrics.

{metrics or 'No recent observations recorded.'}

**Tracking Progress**

Regular monitoring helps identify trends and catch changes early. Continue working with your healthcare providers to track these important metrics.

*Connect your health records for detailed trend analysis and AI-powered insights.*"""

    if narrative_type == "medication":
        medications = "\n".join(
            f"- **{medication_name(m)}** ({m.get('status') or 'active'})" for m in context.medications
        )
        if context.allergies:
            safety = (
                f"You have {_plural(len(context.allergies), 'recorded allergy', 'recorded allergies')} "
                "that your healthcare team considers when prescribing medications."
            )
        else:
            safety = (
                "No allergies are currently recorded. Make sure to inform your healthcare "
                "providers of any known allergies."
            )
        return f"""**Current Medications**

{medications or 'No medications currently recorded.'}

**Medication Safety**

{safety}

*Connect your health records for AI-powered medication interaction analysis.*"""

    if due:
        verb = "is" if len(due) == 1 else "are"
        focus = (
            f"There {verb} {_plural(len(due), 'preventive care item')} that need attention. "
            "Scheduling these appointments should be a priority."
        )
    else:
        focus = (
            "All preventive care items appear to be up to date. "
            "Great job staying on top of health screenings!"
        )
    return f"""**Overall Health Status**

{member_name} is currently managing {_plural(len(context.conditions), 'health condition')} with {_plural(len(context.medications), 'active medication')}. Based on the available health records, the overall health picture shows active engagement with healthcare providers.

**Key Areas of Focus**

{focus}

**Recommended Actions**

1. Review any upcoming medication refills
2. Schedule any overdue preventive screenings
3. Continue monitoring ongoing health conditions

*This is a demo summary. Connect your health records for personalized AI-generated insights.*"""


def _member_age(member: FamilyMember, context: NarrativeContext, today: date) -> int | None:
    birth_date = member.date_of_birth
    if birth_date is None and context.patient:
        birth_date = parse_fhir_date(context.patient.get("birthDate"))
    return age_in_years(birth_date, today) if birth_date else None


async def generate_narrative(
    member: FamilyMember,
    patient_data: dict[str, Any],
    narrative_type: str = "overview",
) -> GeneratedNarrative:
    """
    Write a narrative of ``narrative_type`` for a family member.

    Args:
        member: The family member the narrative is about
        patient_data: Bundle from ``FHIRClient.get_patient_data`` (may be empty)
        narrative_type: overview, condition_focus, preventive, growth or medication

    Returns:
        GeneratedNarrative. ``ai_model`` is ``"demo"`` for template narratives.
    """
    with tracer.start_as_current_span("generate_narrative") as span:
        span.set_attribute("family.member_id", member.id)
        span.set_attribute("narrative.type", narrative_type)

        today = utcnow().date()
        context = NarrativeContext.from_patient_data(patient_data, today=today)
        title = narrative_title(narrative_type, member.name)
        sources = source_data(context)

        client = get_openai_client()
        if client is not None:
            prompt = build_narrative_prompt(
                context, narrative_type, member.name, _member_age(member, context, today)
            )
            try:
                content = await complete_chat(
                    client,
                    [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=NARRATIVE_TEMPERATURE,
                    max_tokens=NARRATIVE_MAX_TOKENS,
                )
                span.set_attribute("narrative.source", "openai")
                return GeneratedNarrative(
                    title=title,
                    content=content or EMPTY_NARRATIVE,
                    source_data=sources,
                    ai_model=settings.OPENAI_MODEL,
                )
            except Exception as e:
                span.record_exception(e)
                logger.error(f"Narrative generation failed for family member {member.id}: {e}")

        span.set_attribute("narrative.source", DEMO_MODEL)
        return GeneratedNarrative(
            title=title,
            content=demo_narrative_content(member.name, narrative_type, context),
            source_data=sources,
            ai_model=DEMO_MODEL,
        )
