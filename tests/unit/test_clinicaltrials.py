"""Unit tests for the ClinicalTrials.gov adapter.

The upstream is replaced by an ``httpx.MockTransport``; the TTL cache gets a
fake clock so expiry can be checked without sleeping.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from healthhub.core.cache import TTLCache
from healthhub.infrastructure.external import ClinicalTrialsClient, Degraded, Ok
from healthhub.infrastructure.external.clinicaltrials import (
    map_condition_to_search_terms,
    transform_study,
)

SAMPLE_STUDY = {
    "protocolSection": {
        "identificationModule": {
            "nctId": "NCT01234567",
            "briefTitle": "Metformin in Adults",
        },
        "statusModule": {
            "overallStatus": "RECRUITING",
            "startDateStruct": {"date": "2024-01"},
            "lastUpdateSubmitDate": "2024-06-01",
        },
        "designModule": {
            "phases": ["PHASE2", "PHASE3"],
            "studyType": "INTERVENTIONAL",
            "enrollmentInfo": {"count": 120},
        },
        "conditionsModule": {"conditions": ["Type 2 Diabetes"]},
        "armsInterventionsModule": {
            "interventions": [{"type": "DRUG", "name": "Metformin"}],
        },
        "sponsorCollaboratorsModule": {"leadSponsor": {"name": "University Hospital"}},
        "eligibilityModule": {"minimumAge": "18 Years", "healthyVolunteers": False},
        "contactsLocationsModule": {
            "locations": [{"facility": "Clinic", "city": "Boston", "country": "United States"}],
        },
        "descriptionModule": {"briefSummary": "A study of metformin."},
    }
}


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_client(handler, clock=None) -> ClinicalTrialsClient:
    cache = TTLCache("clinicaltrials", ttl_seconds=900, clock=clock or Clock())
    return ClinicalTrialsClient(
        base_url="https://ct.test/api/v2",
        cache=cache,
        transport=httpx.MockTransport(handler),
    )


class TestConditionMapping:
    def test_known_condition_expands(self):
        assert map_condition_to_search_terms("Type 2 Diabetes Mellitus") == [
            "type 2 diabetes",
            "diabetes mellitus",
            "diabetes",
        ]

    def test_first_matching_key_wins(self):
        assert map_condition_to_search_terms("Essential hypertension")[0] == "hypertension"

    def test_unknown_condition_is_unchanged(self):
        assert map_condition_to_search_terms("Migraine") == ["Migraine"]


class TestTransformStudy:
    def test_defaults_and_mapping(self):
        study = transform_study(SAMPLE_STUDY)

        assert study.nct_id == "NCT01234567"
        assert study.title == "Metformin in Adults"
        assert study.official_title == "Metformin in Adults"
        assert study.phase == "PHASE2, PHASE3"
        assert study.sponsor == "University Hospital"
        assert study.enrollment_count == 120
        assert study.eligibility.max_age == "N/A"
        assert study.eligibility.sex == "All"
        assert study.locations[0].city == "Boston"
        assert study.description == "A study of metformin."

    def test_empty_study(self):
        study = transform_study({})

        assert study.phase == "Not Applicable"
        assert study.study_type == "Unknown"
        assert study.sponsor == "Unknown"


class TestSearchTrials:
    @pytest.mark.asyncio
    async def test_search_builds_query(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"studies": [SAMPLE_STUDY], "totalCount": 1, "nextPageToken": "abc"}
            )

        client = make_client(handler)
        result = await client.search_trials(["asthma", "bronchial asthma"], page_size=10)

        assert isinstance(result, Ok)
        assert result.data.total_count == 1
        assert result.data.next_page_token == "abc"
        assert result.data.trials[0].nct_id == "NCT01234567"

        params = seen[0].url.params
        assert seen[0].url.path == "/api/v2/studies"
        assert params["query.cond"] == "asthma OR bronchial asthma"
        assert params["filter.overallStatus"] == "RECRUITING"
        assert params["pageSize"] == "10"
        await client.close()

    @pytest.mark.asyncio
    async def test_results_are_cached_until_ttl(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"studies": []})

        clock = Clock()
        client = make_client(handler, clock)

        await client.search_trials(["asthma"])
        await client.search_trials(["asthma"])
        assert calls == 1

        clock.now = 900
        await client.search_trials(["asthma"])
        assert calls == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_phase_is_part_of_cache_key(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"studies": []})

        client = make_client(handler)
        await client.search_trials(["asthma"], phase=["PHASE2"])
        await client.search_trials(["asthma"], phase=["PHASE3"])

        assert calls == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_degrades(self):
        client = make_client(lambda request: httpx.Response(502))

        result = await client.search_trials(["asthma"])

        assert isinstance(result, Degraded)
        assert result.source == "clinicaltrials"
        await client.close()

    @pytest.mark.asyncio
    async def test_degraded_results_are_not_cached(self):
        responses = [httpx.Response(503), httpx.Response(200, json={"studies": []})]
        client = make_client(lambda request: responses.pop(0))

        assert isinstance(await client.search_trials(["asthma"]), Degraded)
        assert isinstance(await client.search_trials(["asthma"]), Ok)
        await client.close()


class TestGetTrial:
    @pytest.mark.asyncio
    async def test_found(self):
        client = make_client(lambda request: httpx.Response(200, json=SAMPLE_STUDY))

        result = await client.get_trial("NCT01234567")

        assert isinstance(result, Ok)
        assert result.data.nct_id == "NCT01234567"
        await client.close()

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        client = make_client(lambda request: httpx.Response(404))

        result = await client.get_trial("NCT00000000")

        assert result == Ok(None)
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error_degrades(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = make_client(handler)

        assert isinstance(await client.get_trial("NCT01234567"), Degraded)
        await client.close()


class TestSharedCache:
    """Payloads read from Redis keep the expiry Redis still has for them."""

    @pytest.mark.asyncio
    async def test_redis_hit_keeps_remaining_ttl(self):
        clock = Clock()
        upstream_calls = []

        def handler(request):
            upstream_calls.append(request)
            return httpx.Response(200, json=SAMPLE_STUDY)

        client = make_client(handler, clock=clock)
        shared_get = AsyncMock(side_effect=[json.dumps(SAMPLE_STUDY), None])

        with (
            patch("healthhub.infrastructure.external.base.cache_get", shared_get),
            patch(
                "healthhub.infrastructure.external.base.cache_remaining_ttl",
                AsyncMock(return_value=100.0),
            ),
            patch("healthhub.infrastructure.external.base.cache_set", AsyncMock(return_value=True)),
        ):
            first = await client.get_trial("NCT01234567")
            clock.now = 99.9
            second = await client.get_trial("NCT01234567")
            clock.now = 100.0
            third = await client.get_trial("NCT01234567")

        assert first.data.nct_id == second.data.nct_id == third.data.nct_id == "NCT01234567"
        assert shared_get.await_count == 2
        assert len(upstream_calls) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_redis_hit_without_ttl_is_not_kept_locally(self):
        client = make_client(lambda request: httpx.Response(500))
        shared_get = AsyncMock(return_value=json.dumps(SAMPLE_STUDY))

        with (
            patch("healthhub.infrastructure.external.base.cache_get", shared_get),
            patch(
                "healthhub.infrastructure.external.base.cache_remaining_ttl",
                AsyncMock(return_value=None),
            ),
        ):
            await client.get_trial("NCT01234567")
            await client.get_trial("NCT01234567")

        assert shared_get.await_count == 2
        assert len(client.cache) == 0
        await client.close()
