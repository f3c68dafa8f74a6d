from datetime import date
from typing import Literal

from healthhub.schemas.utils import CamelModel

CareGapStatus = Literal["due", "satisfied", "not_applicable"]
CareGapCategory = Literal["preventive", "chronic", "wellness"]


class CareGap(CamelModel):
    """Outcome of one quality measure (HEDIS style) for a patient."""

    id: str
    patient_id: str
    title: str
    status: CareGapStatus
    description: str
    recommended_action: str | None = None
    measure_id: str
    category: CareGapCategory
    priority: Literal["low", "medium", "high"] | None = None
    due_date: date | None = None
    last_performed_date: date | None = None
    reason: str | None = None


class CareGapReport(CamelModel):
    patient_id: str
    gaps: list[CareGap]
    due_count: int
