"""Unit tests for the FHIR client.

Covers CRUD against a mocked HTTP layer, search response normalization,
the concurrent patient bundle fetch, error mapping and the singleton used
for the local FHIR store.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from healthhub.infrastructure.fhir.client import (
    FHIRClient,
    close_fhir_client,
    get_fhir_client,
    initialize_fhir_client,
    normalize_search_response,
)
from healthhub.infrastructure.fhir.exceptions import (
    FHIRConnectionError,
    FHIROperationError,
    FHIRResourceNotFoundError,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fhir_client():
    return FHIRClient(base_url="http://test-fhir:8080/fhir", timeout=30)


@pytest.fixture
def sample_patient():
    return {
        "resourceType": "Patient",
        "id": "patient-123",
        "name": [{"family": "Test", "given": ["Patient"]}],
    }


@pytest.fixture
def mock_response():
    """Create a mock httpx Response."""

    def _create_response(status_code: int, json_data=None):
        response = MagicMock(spec=httpx.Response)
        response.status_code = status_code
        if json_data is not None:
            response.json.return_value = json_data
            response.text = json.dumps(json_data)
        else:
            response.json.side_effect = json.JSONDecodeError("No JSON", "", 0)
            response.text = "Internal Server Error"
        return response

    return _create_response


def mock_http(response=None, side_effect=None) -> AsyncMock:
    http = AsyncMock()
    http.request = AsyncMock(return_value=response, side_effect=side_effect)
    return http


# =============================================================================
# normalize_search_response
# =============================================================================


class TestNormalizeSearchResponse:
    def test_bundle(self, sample_patient):
        bundle = {"resourceType": "Bundle", "entry": [{"resource": sample_patient}]}
        assert normalize_search_response(bundle) == [sample_patient]

    def test_bundle_without_entries(self):
        assert normalize_search_response({"resourceType": "Bundle"}) == []
        assert normalize_search_response({"entry": []}) == []

    def test_bare_array(self, sample_patient):
        assert normalize_search_response([sample_patient]) == [sample_patient]

    def test_single_resource(self, sample_patient):
        assert normalize_search_response(sample_patient) == [sample_patient]

    def test_unrecognized_shape(self):
        assert normalize_search_response({"total": 0}) == []
        assert normalize_search_response("nope") == []


# =============================================================================
# Init and HTTP client lifecycle
# =============================================================================


class TestFHIRClientInit:
    def test_init_strips_trailing_slash(self):
        client = FHIRClient(base_url="http://test/fhir///", timeout=5)

        assert client.base_url == "http://test/fhir"
        assert client.timeout == 5
        assert client._client is None

    @pytest.mark.asyncio
    async def test_bearer_token_header(self):
        client = FHIRClient(base_url="http://test/fhir", access_token="abc")

        http = await client._get_client()

        assert http.headers["Authorization"] == "Bearer abc"
        assert http.headers["Accept"] == "application/fhir+json"
        await client.close()

    @pytest.mark.asyncio
    async def test_get_client_reuses_existing(self, fhir_client):
        client1 = await fhir_client._get_client()
        client2 = await fhir_client._get_client()

        assert client1 is client2
        await fhir_client.close()
        assert fhir_client._client is None


# =============================================================================
# CRUD
# =============================================================================


class TestFHIRClientCreate:
    @pytest.mark.asyncio
    async def test_create_success(self, fhir_client, sample_patient, mock_response):
        http = mock_http(mock_response(201, sample_patient))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            result = await fhir_client.create("Patient", {"name": sample_patient["name"]})

        assert result["id"] == "patient-123"
        method, path = http.request.call_args.args
        assert (method, path) == ("POST", "/Patient")
        sent = json.loads(http.request.call_args.kwargs["content"])
        assert sent["resourceType"] == "Patient"

    @pytest.mark.asyncio
    async def test_create_connection_error(self, fhir_client):
        http = mock_http(side_effect=httpx.ConnectError("Connection refused"))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIRConnectionError) as exc_info:
                await fhir_client.create("Patient", {})

        assert "Failed to connect to FHIR server" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_create_timeout_error(self, fhir_client):
        http = mock_http(side_effect=httpx.ReadTimeout("Timeout"))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIRConnectionError) as exc_info:
                await fhir_client.create("Patient", {})

        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_create_operation_error(self, fhir_client, mock_response):
        outcome = {"issue": [{"severity": "error", "diagnostics": "Invalid resource"}]}
        http = mock_http(mock_response(400, outcome))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIROperationError) as exc_info:
                await fhir_client.create("Patient", {})

        assert exc_info.value.status_code == 400
        assert exc_info.value.operation_outcome == outcome


class TestFHIRClientRead:
    @pytest.mark.asyncio
    async def test_get_found(self, fhir_client, sample_patient, mock_response):
        http = mock_http(mock_response(200, sample_patient))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            result = await fhir_client.get("Patient", "patient-123")

        assert result == sample_patient

    @pytest.mark.asyncio
    async def test_get_not_found(self, fhir_client, mock_response):
        http = mock_http(mock_response(404))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIRResourceNotFoundError) as exc_info:
                await fhir_client.get("Patient", "missing")

        assert exc_info.value.resource_id == "missing"

    @pytest.mark.asyncio
    async def test_error_without_json_body(self, fhir_client, mock_response):
        http = mock_http(mock_response(500))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIROperationError) as exc_info:
                await fhir_client.get("Patient", "patient-123")

        assert exc_info.value.operation_outcome == {"text": "Internal Server Error"}


class TestFHIRClientUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_sets_id(self, fhir_client, sample_patient, mock_response):
        http = mock_http(mock_response(200, sample_patient))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            await fhir_client.update("Patient", "patient-123", {"active": True})

        sent = json.loads(http.request.call_args.kwargs["content"])
        assert sent["id"] == "patient-123"
        assert http.request.call_args.args == ("PUT", "/Patient/patient-123")

    @pytest.mark.asyncio
    async def test_update_not_found(self, fhir_client, mock_response):
        http = mock_http(mock_response(404))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            with pytest.raises(FHIRResourceNotFoundError):
                await fhir_client.update("Patient", "missing", {})

    @pytest.mark.asyncio
    async def test_delete(self, fhir_client, mock_response):
        http = mock_http(mock_response(204))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            assert await fhir_client.delete("Patient", "patient-123") is None


class TestFHIRClientSearch:
    @pytest.mark.asyncio
    async def test_search_bundle(self, fhir_client, sample_patient, mock_response):
        bundle = {"resourceType": "Bundle", "entry": [{"resource": sample_patient}]}
        http = mock_http(mock_response(200, bundle))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            result = await fhir_client.search("Patient", {"name": "Test"})

        assert result == [sample_patient]
        assert http.request.call_args.kwargs["params"] == {"name": "Test"}

    @pytest.mark.asyncio
    async def test_search_token_override(self, fhir_client, mock_response):
        http = mock_http(mock_response(200, []))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            await fhir_client.search("Condition", token="provider-token")

        assert http.request.call_args.kwargs["headers"] == {
            "Authorization": "Bearer provider-token"
        }

    @pytest.mark.asyncio
    async def test_coverage_searches_by_beneficiary(self, fhir_client, mock_response):
        http = mock_http(mock_response(200, []))

        with patch.object(fhir_client, "_get_client", AsyncMock(return_value=http)):
            await fhir_client.get_coverage("p1")

        assert http.request.call_args.kwargs["params"] == {"beneficiary": "p1"}


class TestGetPatientData:
    @pytest.mark.asyncio
    async def test_partial_failures_are_isolated(self, fhir_client, sample_patient):
        with (
            patch.object(fhir_client, "get_patient", AsyncMock(return_value=sample_patient)),
            patch.object(
                fhir_client, "get_conditions", AsyncMock(side_effect=FHIRConnectionError("down"))
            ),
            patch.object(fhir_client, "search", AsyncMock(return_value=[{"id": "x"}])),
        ):
            data = await fhir_client.get_patient_data("patient-123")

        assert data["patient"] == sample_patient
        assert data["conditions"] == []
        assert data["observations"] == [{"id": "x"}]
        assert set(data) == {
            "patient",
            "conditions",
            "observations",
            "medications",
            "allergies",
            "immunizations",
            "coverages",
            "claims",
            "explanationOfBenefits",
        }

    @pytest.mark.asyncio
    async def test_unreadable_patient_is_none(self, fhir_client):
        with (
            patch.object(
                fhir_client,
                "get_patient",
                AsyncMock(side_effect=FHIRResourceNotFoundError("Patient", "p1")),
            ),
            patch.object(fhir_client, "search", AsyncMock(return_value=[])),
        ):
            data = await fhir_client.get_patient_data("p1")

        assert data["patient"] is None


# =============================================================================
# Singleton
# =============================================================================


class TestSingletonPattern:
    @pytest.mark.asyncio
    async def test_initialize_and_get(self):
        await close_fhir_client()

        client = await initialize_fhir_client(base_url="http://test:8080/fhir", timeout=30)

        assert get_fhir_client() is client
        await close_fhir_client()

    @pytest.mark.asyncio
    async def test_get_without_init(self):
        await close_fhir_client()

        with pytest.raises(RuntimeError) as exc_info:
            get_fhir_client()

        assert "FHIR client not initialized" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_close_when_none(self):
        await close_fhir_client()
        await close_fhir_client()

        with pytest.raises(RuntimeError):
            get_fhir_client()
