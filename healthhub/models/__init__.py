# SQLAlchemy models for healthhub-api
#
# Every model is imported here so Base.metadata knows all 14 tables
# (create_db_and_tables and Alembic autogenerate rely on it).

from .audit_log import AuditLog
from .family import ActionItem, FamilyMember, HealthGoal, HealthNarrative
from .fhir_session import ChatMessage, FhirSession
from .notification import HealthAlert, HealthDigest
from .scheduling import FormTemplate, PrefilledForm, ScheduledAppointment
from .user import RefreshToken, User

__all__ = [
    "ActionItem",
    "AuditLog",
    "ChatMessage",
    "FamilyMember",
    "FhirSession",
    "FormTemplate",
    "HealthAlert",
    "HealthDigest",
    "HealthGoal",
    "HealthNarrative",
    "PrefilledForm",
    "RefreshToken",
    "ScheduledAppointment",
    "User",
]
