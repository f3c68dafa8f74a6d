"""Unit tests for the domain RFC 9457 exceptions."""

from healthhub.core.exceptions import (
    NoActiveSessionError,
    ProblemDetail,
    UpstreamUnavailableError,
)


class TestNoActiveSessionError:
    def test_defaults(self):
        exc = NoActiveSessionError(instance="/api/fhir/patient")

        assert exc.status_code == 401
        assert exc.problem_detail.title == "Unauthorized"
        assert exc.problem_detail.detail == "No active FHIR session"
        assert exc.problem_detail.instance == "/api/fhir/patient"

    def test_custom_detail(self):
        exc = NoActiveSessionError(detail="Connect a provider first")

        assert exc.problem_detail.detail == "Connect a provider first"
        assert isinstance(exc.problem_detail, ProblemDetail)


class TestUpstreamUnavailableError:
    def test_detail_defaults_to_source(self):
        exc = UpstreamUnavailableError(source="openFDA")

        assert exc.status_code == 503
        assert exc.problem_detail.title == "Service Unavailable"
        assert exc.problem_detail.detail == "openFDA is currently unavailable"
        assert exc.source == "openFDA"

    def test_with_reason(self):
        exc = UpstreamUnavailableError(
            source="NPI Registry",
            detail="NPI Registry timed out",
            instance="/api/external/providers/1234567890",
        )

        assert exc.problem_detail.detail == "NPI Registry timed out"
        assert exc.problem_detail.instance == "/api/external/providers/1234567890"
        assert exc.problem_detail.type is not None
