"""
Care gap evaluation over a patient's FHIR record.

Each measure looks for a qualifying coded observation, immunization or
condition inside a look-back window and reports the measure as ``due``,
``satisfied`` or ``not_applicable``. Codes are matched by coding system
fragment ("loinc", "snomed", "icd10", "cvx") and code.
"""

from datetime import date, datetime
from typing import Any

from opentelemetry import trace

from healthhub.schemas.care_gaps import CareGap, CareGapReport

tracer = trace.get_tracer(__name__)

BLOOD_PRESSURE_CODES = ("85354-9", "8480-6", "8462-4")
CHOLESTEROL_CODES = ("2093-3", "18262-6", "2085-9", "2089-1")
HBA1C_CODES = ("4548-4", "4549-2", "17856-6")
EYE_EXAM_CODES = ("32451-7", "29246-0")
NEPHROPATHY_CODES = ("13705-9", "32294-1", "31208-2")
MAMMOGRAM_CODES = ("24606-6", "24605-8", "26346-7", "26347-5", "26348-3", "26349-1")
FOBT_CODES = ("2335-8", "27401-3", "12503-9", "14563-1", "14564-9", "14565-6")
COLONOSCOPY_CODES = ("18500-9",)
SIGMOIDOSCOPY_CODES = ("18501-7",)
COLORECTAL_CODES = FOBT_CODES + COLONOSCOPY_CODES + SIGMOIDOSCOPY_CODES
FLU_VACCINE_CODES = ("88", "141", "150", "155", "158", "161", "166", "171", "185", "186", "197")

DIABETES_SNOMED = ("44054006", "73211009", "46635009", "237627000")
DIABETES_ICD10_PREFIXES = ("E11", "E10")
HYPERTENSION_SNOMED = ("38341003", "59621000")
CARDIOVASCULAR_RISK_SNOMED = ("44054006", "73211009", "38341003", "22298006")
CARDIOVASCULAR_RISK_ICD10_PREFIXES = ("E11", "I10", "Z87")
COLORECTAL_CANCER_SNOMED = ("93761005", "109355002", "363406005")
BILATERAL_MASTECTOMY_SNOMED = ("429400009", "137739009")


# =============================================================================
# Helpers
# =============================================================================


def parse_fhir_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None


def months_before(day: date, months: int) -> date:
    index = day.year * 12 + day.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    # Clamp to the end of shorter months (Mar 31 - 1 month -> Feb 28/29)
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month, min(day.day, candidate))
        except ValueError:
            continue
    return date(year, month, 28)


def age_in_years(birth_date: date, today: date) -> int:
    had_birthday = (today.month, today.day) >= (birth_date.month, birth_date.day)
    return today.year - birth_date.year - (0 if had_birthday else 1)


def _has_coding(
    concept: dict[str, Any] | None,
    system_fragment: str,
    codes: tuple[str, ...] = (),
    prefixes: tuple[str, ...] = (),
) -> bool:
    for coding in (concept or {}).get("coding") or []:
        if system_fragment not in (coding.get("system") or ""):
            continue
        code = coding.get("code") or ""
        if code in codes or (prefixes and code.startswith(prefixes)):
            return True
    return False


def _matching_observations(
    observations: list[dict[str, Any]], codes: tuple[str, ...]
) -> list[dict[str, Any]]:
    return [o for o in observations if _has_coding(o.get("code"), "loinc", codes)]


def _performed_since(observations: list[dict[str, Any]], codes: tuple[str, ...], since: date) -> bool:
    for observation in _matching_observations(observations, codes):
        performed = parse_fhir_date(observation.get("effectiveDateTime"))
        if performed and performed > since:
            return True
    return False


def last_screening_date(observations: list[dict[str, Any]], codes: tuple[str, ...]) -> date | None:
    dates = [
        d
        for d in (parse_fhir_date(o.get("effectiveDateTime")) for o in _matching_observations(observations, codes))
        if d is not None
    ]
    return max(dates) if dates else None


def time_since_message(last: date, today: date) -> str:
    years = age_in_years(last, today)
    months = (today.year - last.year) * 12 + today.month - last.month
    if years >= 2:
        return f"It's been over {years} years since your last screening"
    if years >= 1:
        return f"It's been about {years} year since your last screening"
    if months >= 6:
        return f"It's been {months} months since your last screening"
    if months >= 1:
        return f"Your last screening was {months} month{'s' if months > 1 else ''} ago"
    return "Your screening is recent"


def _numeric_value(observation: dict[str, Any]) -> float | None:
    quantity = observation.get("valueQuantity") or {}
    if quantity.get("value") is not None:
        return float(quantity["value"])
    try:
        return float(observation.get("valueString"))
    except (TypeError, ValueError):
        return None


def _has_condition(
    conditions: list[dict[str, Any]],
    snomed: tuple[str, ...] = (),
    icd10_prefixes: tuple[str, ...] = (),
) -> bool:
    for condition in conditions:
        code = condition.get("code")
        if _has_coding(code, "snomed", snomed) or (
            icd10_prefixes and _has_coding(code, "icd10", prefixes=icd10_prefixes)
        ):
            return True
    return False


# =============================================================================
# Measures
# =============================================================================


class _Context:
    def __init__(self, patient, conditions, observations, immunizations, today):
        self.patient = patient
        self.patient_id = str(patient.get("id") or "")
        self.conditions = conditions
        self.observations = observations
        self.immunizations = immunizations
        self.today = today
        birth_date = parse_fhir_date(patient.get("birthDate"))
        self.age = age_in_years(birth_date, today) if birth_date else None

    def gap(self, **fields) -> CareGap:
        return CareGap(patient_id=self.patient_id, **fields)

    def due(self, **fields) -> CareGap:
        return self.gap(status="due", due_date=self.today, **fields)


def _blood_pressure(ctx: _Context) -> list[CareGap]:
    if ctx.age is None or ctx.age < 18:
        return []
    if _performed_since(ctx.observations, BLOOD_PRESSURE_CODES, months_before(ctx.today, 24)):
        return []
    last = last_screening_date(ctx.observations, BLOOD_PRESSURE_CODES)
    message = (
        f"{time_since_message(last, ctx.today)} for a blood pressure check"
        if last
        else "We don't see any recent blood pressure readings"
    )
    return [
        ctx.due(
            id="bp-1",
            title="Blood Pressure Check",
            description=f"{message}. Regular blood pressure monitoring helps detect hypertension early.",
            recommended_action=(
                "Schedule a blood pressure check with your healthcare provider. "
                "This can often be done during routine visits or at many pharmacies."
            ),
            measure_id="BP-Monitor",
            category="preventive",
            priority="medium",
        )
    ]


def _cholesterol(ctx: _Context) -> list[CareGap]:
    if ctx.age is None:
        return []
    at_risk = _has_condition(
        ctx.conditions, CARDIOVASCULAR_RISK_SNOMED, CARDIOVASCULAR_RISK_ICD10_PREFIXES
    )
    if not (ctx.age >= 40 or (ctx.age >= 20 and at_risk)):
        return []
    if _performed_since(ctx.observations, CHOLESTEROL_CODES, months_before(ctx.today, 60)):
        return []
    last = last_screening_date(ctx.observations, CHOLESTEROL_CODES)
    message = (
        f"{time_since_message(last, ctx.today)} for cholesterol screening"
        if last
        else "We don't see any recent cholesterol test results"
    )
    return [
        ctx.due(
            id="chol-1",
            title="Cholesterol Screening",
            description=f"{message}. Regular cholesterol testing helps assess your heart disease risk.",
            recommended_action=(
                "Schedule a cholesterol panel (lipid test) with your healthcare provider. "
                "This simple blood test should be done every 4-6 years."
            ),
            measure_id="Cholesterol-Screen",
            category="preventive",
            priority="medium",
        )
    ]


def _flu_vaccine(ctx: _Context) -> list[CareGap]:
    if ctx.age is None or ctx.age < 6:
        return []
    for immunization in ctx.immunizations:
        given = parse_fhir_date(immunization.get("occurrenceDateTime"))
        if (
            given
            and given.year >= ctx.today.year
            and _has_coding(immunization.get("vaccineCode"), "cvx", FLU_VACCINE_CODES)
        ):
            return []
    return [
        ctx.due(
            id="flu-1",
            title="Annual Flu Vaccine",
            description="Annual influenza vaccination is recommended for everyone 6 months and older.",
            recommended_action=(
                "Schedule your annual flu vaccine. "
                "It's especially important during flu season (fall/winter)."
            ),
            measure_id="Flu-Vaccine",
            category="preventive",
            priority="medium",
        )
    ]


def _colorectal(ctx: _Context) -> list[CareGap]:
    if ctx.age is None:
        return []
    base = {
        "id": "col-1",
        "title": "Colorectal Cancer Screening",
        "measure_id": "HEDIS-COL",
        "category": "preventive",
    }
    if ctx.age < 45 or ctx.age > 75:
        return [
            ctx.gap(
                **base,
                status="not_applicable",
                description=(
                    "Colorectal cancer screening typically begins at age 45."
                    if ctx.age < 45
                    else "Screening may not be recommended after age 75, discuss with your provider."
                ),
                recommended_action=(
                    "No action needed at this time based on your age."
                    if ctx.age < 45
                    else "Discuss continued screening benefits with your healthcare provider."
                ),
                reason=f"Patient age ({ctx.age}) is outside the recommended screening range of 45-75 years.",
            )
        ]
    if _has_condition(ctx.conditions, COLORECTAL_CANCER_SNOMED):
        return [
            ctx.gap(
                **base,
                status="not_applicable",
                description="Colorectal cancer screening is not applicable due to patient history.",
                recommended_action="No screening needed due to prior colorectal cancer diagnosis.",
                reason="Patient has history of colorectal cancer.",
            )
        ]

    screened = (
        _performed_since(ctx.observations, FOBT_CODES, months_before(ctx.today, 12))
        or _performed_since(ctx.observations, COLONOSCOPY_CODES, months_before(ctx.today, 120))
        or _performed_since(ctx.observations, SIGMOIDOSCOPY_CODES, months_before(ctx.today, 60))
    )
    last = last_screening_date(ctx.observations, COLORECTAL_CODES)
    if screened:
        return [
            ctx.gap(
                **base,
                status="satisfied",
                description="Colorectal cancer screening is up to date.",
                recommended_action="Continue routine screening per guidelines.",
                last_performed_date=last,
            )
        ]

    message = (
        time_since_message(last, ctx.today)
        if last
        else "We don't see any record of previous colorectal screening"
    )
    return [
        ctx.due(
            **base,
            description=f"{message}. Regular screening helps detect problems early when they're most treatable.",
            recommended_action=(
                "Consider scheduling a colonoscopy (every 10 years) or completing an annual stool test (FIT/FOBT)."
                if ctx.age >= 50
                else "As you're now 45+, it's time to start colorectal cancer screening. "
                "Discuss options with your provider."
            ),
            priority="high",
        )
    ]


def _diabetes(ctx: _Context) -> list[CareGap]:
    if not _has_condition(ctx.conditions, DIABETES_SNOMED, DIABETES_ICD10_PREFIXES):
        return [
            ctx.gap(
                id="cdc-1",
                title="Diabetes Care",
                status="not_applicable",
                description="Diabetes management measures are not applicable.",
                recommended_action="No action needed as patient does not have diabetes diagnosis.",
                measure_id="HEDIS-CDC",
                category="chronic",
                reason="Patient does not have diabetes.",
            )
        ]

    gaps: list[CareGap] = []
    one_year_ago = months_before(ctx.today, 12)

    if not _performed_since(ctx.observations, HBA1C_CODES, one_year_ago):
        last = last_screening_date(ctx.observations, HBA1C_CODES)
        message = time_since_message(last, ctx.today) if last else "We don't see any recent HbA1c results"
        gaps.append(
            ctx.due(
                id="cdc-1",
                title="HbA1c Test Due",
                description=f"{message}. Regular HbA1c testing helps monitor your diabetes management over time.",
                recommended_action=(
                    "Schedule an HbA1c lab test with your healthcare provider. This simple blood "
                    "test shows your average blood sugar over the past 2-3 months."
                ),
                measure_id="HEDIS-CDC-HbA1c",
                category="chronic",
                priority="high",
            )
        )
    else:
        latest = max(
            _matching_observations(ctx.observations, HBA1C_CODES),
            key=lambda o: parse_fhir_date(o.get("effectiveDateTime")) or date.min,
        )
        value = _numeric_value(latest)
        if value is not None and value > 9:
            gaps.append(
                ctx.gap(
                    id="cdc-2",
                    title="Poor Glycemic Control",
                    status="due",
                    description=f"HbA1c value of {value:g}% indicates poor glycemic control.",
                    recommended_action="Review medication regimen and consider adjustments.",
                    measure_id="HEDIS-CDC-HbA1c-Control",
                    category="chronic",
                    priority="high",
                    last_performed_date=parse_fhir_date(latest.get("effectiveDateTime")),
                )
            )

    if not _performed_since(ctx.observations, EYE_EXAM_CODES, one_year_ago):
        last = last_screening_date(ctx.observations, EYE_EXAM_CODES)
        message = (
            f"{time_since_message(last, ctx.today)} for a diabetic eye exam"
            if last
            else "We don't see any record of a recent diabetic eye exam"
        )
        gaps.append(
            ctx.due(
                id="cdc-3",
                title="Diabetic Eye Exam",
                description=(
                    f"{message}. Annual eye exams help detect diabetic eye disease early, "
                    "when treatment is most effective."
                ),
                recommended_action=(
                    "Schedule an appointment with an eye care professional for a comprehensive "
                    "dilated eye exam. This is important even if your vision seems fine."
                ),
                measure_id="HEDIS-CDC-EyeExam",
                category="chronic",
                priority="medium",
            )
        )

    if not _performed_since(ctx.observations, NEPHROPATHY_CODES, one_year_ago):
        gaps.append(
            ctx.due(
                id="cdc-4",
                title="Nephropathy Monitoring",
                description="Annual nephropathy monitoring is recommended for diabetic patients.",
                recommended_action="Schedule urine microalbumin test.",
                measure_id="HEDIS-CDC-Nephropathy",
                category="chronic",
                priority="medium",
            )
        )
    return gaps


def _breast_cancer(ctx: _Context) -> list[CareGap]:
    base = {
        "id": "bcs-1",
        "title": "Breast Cancer Screening",
        "measure_id": "HEDIS-BCS",
        "category": "preventive",
    }
    screening_range = "Breast cancer screening is recommended for women aged 50-74."
    if ctx.age is None or ctx.patient.get("gender") != "female":
        return [
            ctx.gap(
                **base,
                status="not_applicable",
                description=screening_range,
                recommended_action="No action needed at this time.",
                reason=(
                    "Patient gender does not match screening criteria."
                    if ctx.patient.get("gender") != "female"
                    else "Patient age is outside recommended screening range."
                ),
            )
        ]
    if ctx.age < 50 or ctx.age > 74:
        return [
            ctx.gap(
                **base,
                status="not_applicable",
                description=screening_range,
                recommended_action="No action needed at this time based on patient age.",
                reason=f"Patient age ({ctx.age}) is outside the recommended screening range of 50-74 years.",
            )
        ]
    if _has_condition(ctx.conditions, BILATERAL_MASTECTOMY_SNOMED):
        return [
            ctx.gap(
                **base,
                status="not_applicable",
                description="Breast cancer screening is not applicable due to patient history.",
                recommended_action="No mammogram needed due to history of bilateral mastectomy.",
                reason="Patient has history of bilateral mastectomy.",
            )
        ]
    if _performed_since(ctx.observations, MAMMOGRAM_CODES, months_before(ctx.today, 27)):
        return [
            ctx.gap(
                **base,
                status="satisfied",
                description="Breast cancer screening is up to date.",
                recommended_action="Continue routine mammography screening every 2 years.",
                last_performed_date=last_screening_date(ctx.observations, MAMMOGRAM_CODES),
            )
        ]
    return [
        ctx.due(
            **base,
            description="Breast cancer screening mammogram is recommended.",
            recommended_action="Schedule mammogram.",
            priority="high",
        )
    ]


def _hypertension(ctx: _Context) -> list[CareGap]:
    if not _has_condition(ctx.conditions, HYPERTENSION_SNOMED, ("I10",)):
        return []
    if _performed_since(ctx.observations, BLOOD_PRESSURE_CODES, months_before(ctx.today, 6)):
        return []
    last = last_screening_date(ctx.observations, BLOOD_PRESSURE_CODES)
    message = (
        f"{time_since_message(last, ctx.today)} for blood pressure monitoring"
        if last
        else "We don't see recent blood pressure readings"
    )
    return [
        ctx.due(
            id="htn-1",
            title="Blood Pressure Monitoring",
            description=(
                f"{message}. With hypertension, regular monitoring helps ensure your "
                "treatment is working effectively."
            ),
            recommended_action=(
                "Schedule a blood pressure check with your healthcare provider. "
                "Consider monitoring at home between visits."
            ),
            measure_id="HTN-Monitor",
            category="chronic",
            priority="high",
        )
    ]


MEASURES = (_colorectal, _diabetes, _breast_cancer, _blood_pressure, _cholesterol, _flu_vaccine, _hypertension)


def evaluate_care_gaps(
    patient: dict[str, Any],
    conditions: list[dict[str, Any]] | None = None,
    observations: list[dict[str, Any]] | None = None,
    immunizations: list[dict[str, Any]] | None = None,
    today: date | None = None,
) -> list[CareGap]:
    """Evaluate every measure for one patient. ``today`` is injectable for tests."""
    with tracer.start_as_current_span("evaluate_care_gaps") as span:
        ctx = _Context(
            patient,
            conditions or [],
            observations or [],
            immunizations or [],
            today or date.today(),
        )
        gaps = [gap for measure in MEASURES for gap in measure(ctx)]
        span.set_attribute("care_gaps.due", sum(1 for g in gaps if g.status == "due"))
        return gaps


def care_gap_report(patient_data: dict[str, Any], today: date | None = None) -> CareGapReport:
    """Care gaps for a bundle returned by ``FHIRClient.get_patient_data``."""
    patient = patient_data.get("patient") or {}
    gaps = evaluate_care_gaps(
        patient,
        patient_data.get("conditions"),
        patient_data.get("observations"),
        patient_data.get("immunizations"),
        today=today,
    )
    return CareGapReport(
        patient_id=str(patient.get("id") or ""),
        gaps=gaps,
        due_count=sum(1 for g in gaps if g.status == "due"),
    )
