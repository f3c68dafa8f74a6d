"""
Health chat assistant.

The system prompt is built from the patient's record on the current
provider; the conversation is answered by the OpenAI chat completions API.
"""

import logging
from datetime import date
from typing import Any

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.infrastructure.fhir.helpers import (
    codeable_concept_text,
    format_human_name,
    medication_name,
    observation_value,
)
from healthhub.infrastructure.fhir.providers import client_for_session
from healthhub.infrastructure.llm import complete_chat, get_openai_client
from healthhub.models.fhir_session import ChatMessage, FhirSession
from healthhub.services import session_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

HISTORY_LIMIT = 10
RECENT_OBSERVATIONS = 10
CHAT_TEMPERATURE = 0.5
CHAT_MAX_TOKENS = 500

EMPTY_REPLY = (
    "I apologize, but I couldn't generate a helpful response at the moment. "
    "Please try again or phrase your question differently."
)
ERROR_REPLY = "I encountered an error while processing your request. Please try again later."
NOT_CONFIGURED_REPLY = (
    "The health assistant is not configured on this server. "
    "Please contact your administrator or try again later."
)

GUIDELINES = """IMPORTANT GUIDELINES:
- Provide informative responses based on the health information above.
- Keep your responses concise and focused on the patient's question.
- Do not attempt to diagnose conditions or prescribe treatments.
- Always recommend consulting with a healthcare provider for medical concerns.
- Use simple, non-technical language when appropriate.
- Make it clear that you're providing information based on recorded health data.
- Acknowledge the limitations of your knowledge and do not make up information."""


def format_fhir_date(value: str | None) -> str:
    if not value:
        return "Unknown"
    try:
        return date.fromisoformat(value[:10]).strftime("%B %d, %Y")
    except ValueError:
        return value


def recent_observations(
    observations: list[dict[str, Any]], limit: int = RECENT_OBSERVATIONS
) -> list[dict[str, Any]]:
    """Most recent observations first; undated ones sort last."""
    ordered = sorted(observations, key=lambda o: o.get("effectiveDateTime") or "", reverse=True)
    return ordered[:limit]


def build_health_context(patient_data: dict[str, Any]) -> str:
    """Build the system prompt from a patient bundle (see FHIRClient.get_patient_data)."""
    lines = [
        "You are a helpful health assistant. "
        "You have access to the following information about the patient:"
    ]

    patient = patient_data.get("patient")
    if patient:
        lines += [
            "",
            "PATIENT INFORMATION:",
            f"- Name: {format_human_name(patient)}",
            f"- Gender: {patient.get('gender') or 'Unknown'}",
            f"- Date of Birth: {format_fhir_date(patient.get('birthDate'))}",
        ]

    conditions = patient_data.get("conditions") or []
    if conditions:
        lines += ["", "MEDICAL CONDITIONS:"]
        lines += [
            f"- {codeable_concept_text(c.get('code'), 'Unknown condition')}" for c in conditions
        ]

    medications = patient_data.get("medications") or []
    if medications:
        lines += ["", "MEDICATIONS:"]
        lines += [f"- {medication_name(m)}" for m in medications]

    observations = patient_data.get("observations") or []
    if observations:
        lines += ["", "RECENT OBSERVATIONS:"]
        lines += [
            f"- {codeable_concept_text(o.get('code'))}: {observation_value(o)}"
            for o in recent_observations(observations)
        ]

    allergies = patient_data.get("allergies") or []
    if allergies:
        lines += ["", "ALLERGIES:"]
        lines += [f"- {codeable_concept_text(a.get('code'))}" for a in allergies]

    lines += ["", GUIDELINES]
    return "\n".join(lines)


async def generate_health_response(
    message: str,
    history: list[dict[str, str]],
    patient_data: dict[str, Any],
) -> str:
    """
    Answer a user message with the patient's record as context.

    Only the last ``HISTORY_LIMIT`` history messages are sent. Never raises:
    an empty completion yields ``EMPTY_REPLY`` and any API error ``ERROR_REPLY``.
    """
    client = get_openai_client()
    if client is None:
        logger.warning("OPENAI_API_KEY not configured, chat reply unavailable")
        return NOT_CONFIGURED_REPLY

    messages = [{"role": "system", "content": build_health_context(patient_data)}]
    messages += [
        {"role": item["role"], "content": item["content"]} for item in history[-HISTORY_LIMIT:]
    ]
    messages.append({"role": "user", "content": message})

    try:
        reply = await complete_chat(
            client, messages, temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS
        )
    except Exception as e:
        logger.error(f"Error generating AI response: {e}")
        return ERROR_REPLY
    return reply or EMPTY_REPLY


async def gather_patient_data(session: FhirSession) -> dict[str, Any]:
    """Fetch the session's patient bundle; failures yield an empty context."""
    if not session.patient_id:
        return {}
    client = client_for_session(session)
    try:
        return await client.get_patient_data(session.patient_id)
    except Exception as e:
        logger.warning(f"Chat context unavailable for FHIR session {session.id}: {e}")
        return {}
    finally:
        await client.close()


def context_summary(patient_data: dict[str, Any]) -> dict[str, Any]:
    """What the reply was grounded on, stored with the assistant message."""
    return {
        "patientId": (patient_data.get("patient") or {}).get("id"),
        "conditionCount": len(patient_data.get("conditions") or []),
        "medicationCount": len(patient_data.get("medications") or []),
        "observationCount": len(patient_data.get("observations") or []),
        "allergyCount": len(patient_data.get("allergies") or []),
    }


async def send_chat_message(
    db: AsyncSession, session: FhirSession, content: str
) -> tuple[ChatMessage, ChatMessage]:
    """
    Store the user message, answer it and store the reply.

    Returns:
        (user message, assistant message)
    """
    with tracer.start_as_current_span("send_chat_message") as span:
        span.set_attribute("fhir.session_id", session.id)

        history = [
            {"role": m.role, "content": m.content}
            for m in await session_service.get_chat_messages(db, session.id, limit=HISTORY_LIMIT)
        ]
        user_message = await session_service.create_chat_message(db, session.id, "user", content)

        patient_data = await gather_patient_data(session)
        reply = await generate_health_response(content, history, patient_data)

        assistant_message = await session_service.create_chat_message(
            db, session.id, "assistant", reply, context_data=context_summary(patient_data)
        )
        return user_message, assistant_message
