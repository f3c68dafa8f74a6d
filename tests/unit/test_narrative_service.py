"""Tests for health narrative generation."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from healthhub.infrastructure.fhir.demo import DemoFHIRClient
from healthhub.models.family import FamilyMember
from healthhub.services.narrative_service import (
    DEMO_MODEL,
    EMPTY_NARRATIVE,
    NarrativeContext,
    build_narrative_prompt,
    demo_narrative_content,
    generate_narrative,
    narrative_title,
)


@pytest.fixture
def member():
    return FamilyMember(
        id=3, user_id=1, name="John Smith", relationship="parent", date_of_birth=date(1980, 7, 15)
    )


@pytest.fixture
async def demo_bundle():
    return await DemoFHIRClient().get_patient_data("demo-patient-1")


class TestTemplates:
    def test_titles(self):
        assert narrative_title("preventive", "Maya") == "Preventive Care Status for Maya"
        assert narrative_title("unknown", "Maya") == "Health Overview for Maya"

    @pytest.mark.asyncio
    async def test_overview_counts(self, demo_bundle):
        context = NarrativeContext.from_patient_data(demo_bundle, today=date(2024, 6, 15))

        content = demo_narrative_content("John", "overview", context)

        assert "John is currently managing 3 health conditions with 2 active medications" in content
        assert "This is a demo summary" in content

    def test_empty_record(self):
        context = NarrativeContext.from_patient_data({})

        content = demo_narrative_content("Maya", "medication", context)

        assert "No medications currently recorded." in content
        assert "No allergies are currently recorded." in content
        assert context.care_gaps == []

    @pytest.mark.asyncio
    async def test_preventive_lists_due_gaps(self, demo_bundle):
        context = NarrativeContext.from_patient_data(demo_bundle, today=date(2024, 6, 15))

        content = demo_narrative_content("John", "preventive", context)

        assert context.due_gaps
        for gap in context.due_gaps:
            assert f"**{gap.title}**" in content

    @pytest.mark.asyncio
    async def test_prompt_contains_record(self, demo_bundle):
        context = NarrativeContext.from_patient_data(demo_bundle, today=date(2024, 6, 15))

        prompt = build_narrative_prompt(context, "condition_focus", "John", 43)

        assert "Patient: John William Smith, 43 years old, male" in prompt
        assert "Type 2 Diabetes" in prompt
        assert "Generate a condition-focused narrative" in prompt

    def test_prompt_without_patient(self):
        prompt = build_narrative_prompt(NarrativeContext(), "overview", "Maya", None)

        assert "Patient: Maya, age unknown" in prompt
        assert "Conditions: None recorded" in prompt


class TestGenerateNarrative:
    @pytest.mark.asyncio
    async def test_template_without_api_key(self, member, demo_bundle):
        with patch("healthhub.services.narrative_service.get_openai_client", return_value=None):
            narrative = await generate_narrative(member, demo_bundle, "growth")

        assert narrative.ai_model == DEMO_MODEL
        assert narrative.title == "Health Trends for John Smith"
        assert narrative.source_data["conditionCount"] == 3
        assert "**Health Trends**" in narrative.content

    @pytest.mark.asyncio
    async def test_model_narrative(self, member, demo_bundle):
        complete = AsyncMock(return_value="John is doing well.")

        with (
            patch("healthhub.services.narrative_service.get_openai_client", return_value=object()),
            patch("healthhub.services.narrative_service.complete_chat", complete),
        ):
            narrative = await generate_narrative(member, demo_bundle)

        assert narrative.content == "John is doing well."
        assert narrative.ai_model != DEMO_MODEL
        messages = complete.call_args.args[1]
        assert messages[0]["role"] == "system"
        assert "Patient: John William Smith" in messages[1]["content"]
        assert complete.call_args.kwargs == {"temperature": 0.7, "max_tokens": 1000}

    @pytest.mark.asyncio
    async def test_empty_completion(self, member):
        with (
            patch("healthhub.services.narrative_service.get_openai_client", return_value=object()),
            patch(
                "healthhub.services.narrative_service.complete_chat", AsyncMock(return_value=None)
            ),
        ):
            narrative = await generate_narrative(member, {})

        assert narrative.content == EMPTY_NARRATIVE

    @pytest.mark.asyncio
    async def test_api_failure_falls_back_to_template(self, member):
        with (
            patch("healthhub.services.narrative_service.get_openai_client", return_value=object()),
            patch(
                "healthhub.services.narrative_service.complete_chat",
                AsyncMock(side_effect=RuntimeError("quota")),
            ),
        ):
            narrative = await generate_narrative(member, {}, "preventive")

        assert narrative.ai_model == DEMO_MODEL
        assert "All preventive care screenings" in narrative.content
