"""FHIR provider sessions and migration."""

from datetime import datetime

from pydantic import Field

from healthhub.schemas.utils import CamelModel


class FhirSessionCreate(CamelModel):
    """A provider connection obtained by an OAuth (SMART on FHIR) flow."""

    provider: str = Field(..., min_length=1, max_length=50)
    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: int | None = Field(None, gt=0, description="Token lifetime in seconds")
    token_expiry: datetime | None = None
    fhir_server: str = Field(..., min_length=1, max_length=1024)
    patient_id: str | None = Field(None, max_length=255)
    scope: str | None = None
    state: str | None = None
    user_id: int | None = None


class HapiConnectRequest(CamelModel):
    patient_id: str | None = Field(None, min_length=1, max_length=255)


class FhirSessionResponse(CamelModel):
    """Session view returned to clients. Tokens are never exposed."""

    id: int
    provider: str
    fhir_server: str | None = None
    patient_id: str | None = None
    scope: str | None = None
    created_at: datetime | None = None
    current: bool
    ended_at: datetime | None = None
    migrated: bool = False
    migration_date: datetime | None = None
    migration_counts: dict[str, int] | None = None


class SessionEndResponse(CamelModel):
    success: bool
    session: FhirSessionResponse | None = None


class MigrationResponse(CamelModel):
    success: bool = True
    session_id: int
    patient_id: str = Field(..., description="Patient id minted by the local FHIR store")
    counts: dict[str, int]
    total: int
