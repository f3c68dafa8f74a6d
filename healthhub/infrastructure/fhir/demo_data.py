"""Sample FHIR R4 records served by the demo provider.

Two patients (``demo-patient-1`` John William Smith and ``demo-patient-2``
Emily Rose Johnson) with enough clinical, coverage and directory data to
exercise every FHIR route without an external server.
"""

from typing import Any

SNOMED = "http://snomed.info/sct"
LOINC = "http://loinc.org"
RXNORM = "http://www.nlm.nih.gov/research/umls/rxnorm"
CVX = "http://hl7.org/fhir/sid/cvx"
UCUM = "http://unitsofmeasure.org"


def _concept(system: str, code: str, display: str, text: str | None = None) -> dict[str, Any]:
    concept: dict[str, Any] = {"coding": [{"system": system, "code": code, "display": display}]}
    if text:
        concept["text"] = text
    return concept


def _ref(reference: str, display: str) -> dict[str, str]:
    return {"reference": reference, "display": display}


JOHN = _ref("Patient/demo-patient-1", "John William Smith")
EMILY = _ref("Patient/demo-patient-2", "Emily Rose Johnson")
DR_WILLIAMS = _ref("Practitioner/demo-practitioner-1", "Dr. Jane Williams")
DR_JOHNSON = _ref("Practitioner/demo-practitioner-2", "Dr. Robert Johnson")


def _patient(
    patient_id: str,
    family: str,
    given: list[str],
    gender: str,
    birth_date: str,
    phone: str,
    email: str,
    line: str,
    city: str,
    state: str,
    postal_code: str,
    mrn: str,
) -> dict[str, Any]:
    return {
        "resourceType": "Patient",
        "id": patient_id,
        "active": True,
        "name": [{"use": "official", "family": family, "given": given}],
        "telecom": [
            {"system": "phone", "value": phone, "use": "home"},
            {"system": "email", "value": email, "use": "home"},
        ],
        "gender": gender,
        "birthDate": birth_date,
        "address": [
            {
                "use": "home",
                "line": [line],
                "city": city,
                "state": state,
                "postalCode": postal_code,
                "country": "USA",
            }
        ],
        "identifier": [
            {
                "use": "official",
                "type": _concept(
                    "http://terminology.hl7.org/CodeSystem/v2-0203",
                    "MR",
                    "Medical Record Number",
                    "Medical Record Number",
                ),
                "system": "http://hospital.example.org",
                "value": mrn,
            }
        ],
    }


PATIENTS = [
    _patient(
        "demo-patient-1", "Smith", ["John", "William"], "male", "1980-07-15",
        "555-123-4567", "john.smith@example.com", "123 Main St", "Anytown", "CA", "12345",
        "MRN-7893214",
    ),
    _patient(
        "demo-patient-2", "Johnson", ["Emily", "Rose"], "female", "1992-03-20",
        "555-987-6543", "emily.johnson@example.com", "456 Oak Ave", "Metropolis", "NY", "10001",
        "MRN-1234567",
    ),
]


def _condition(
    condition_id: str, subject: dict, code: str, display: str, text: str, onset: str,
    clinical_status: str = "active",
) -> dict[str, Any]:
    return {
        "resourceType": "Condition",
        "id": condition_id,
        "clinicalStatus": _concept(
            "http://terminology.hl7.org/CodeSystem/condition-clinical",
            clinical_status,
            clinical_status.capitalize(),
        ),
        "verificationStatus": _concept(
            "http://terminology.hl7.org/CodeSystem/condition-ver-status", "confirmed", "Confirmed"
        ),
        "code": _concept(SNOMED, code, display, text),
        "subject": subject,
        "onsetDateTime": onset,
        "recordedDate": onset,
    }


CONDITIONS = [
    _condition("demo-condition-1", JOHN, "44054006", "Diabetes mellitus type 2", "Type 2 Diabetes", "2018-03-15"),
    _condition("demo-condition-2", JOHN, "38341003", "Hypertension", "Hypertension", "2019-08-10"),
    _condition(
        "demo-condition-3", JOHN, "75498004", "Acute bacterial sinusitis", "Sinusitis", "2022-11-02",
        clinical_status="resolved",
    ),
    _condition("demo-condition-4", EMILY, "195967001", "Asthma", "Asthma", "2005-06-01"),
]


def _observation(
    observation_id: str,
    subject: dict,
    category: str,
    code: str,
    display: str,
    text: str,
    effective: str,
    value: float | None = None,
    unit: str | None = None,
    interpretation: str | None = None,
    components: list[tuple[str, str, float, str]] | None = None,
) -> dict[str, Any]:
    observation: dict[str, Any] = {
        "resourceType": "Observation",
        "id": observation_id,
        "status": "final",
        "category": [
            _concept(
                "http://terminology.hl7.org/CodeSystem/observation-category",
                category,
                category.replace("-", " ").title(),
            )
        ],
        "code": _concept(LOINC, code, display, text),
        "subject": subject,
        "effectiveDateTime": effective,
        "issued": effective,
    }
    if value is not None:
        observation["valueQuantity"] = {"value": value, "unit": unit, "system": UCUM, "code": unit}
    if components:
        observation["component"] = [
            {
                "code": _concept(LOINC, c_code, c_display),
                "valueQuantity": {"value": c_value, "unit": c_unit, "system": UCUM, "code": c_unit},
            }
            for c_code, c_display, c_value, c_unit in components
        ]
    if interpretation:
        observation["interpretation"] = [
            {
                "coding": [
                    {
                        "system": "http://terminology.hl7.org/CodeSystem/v3-ObservationInterpretation",
                        "code": interpretation[0].upper(),
                        "display": interpretation,
                    }
                ],
                "text": interpretation,
            }
        ]
    return observation


OBSERVATIONS = [
    _observation(
        "demo-observation-1", JOHN, "vital-signs", "85354-9",
        "Blood pressure panel with all children optional", "Blood Pressure",
        "2023-03-15T10:30:00Z", interpretation="High",
        components=[
            ("8480-6", "Systolic blood pressure", 140, "mmHg"),
            ("8462-4", "Diastolic blood pressure", 90, "mmHg"),
        ],
    ),
    _observation(
        "demo-observation-2", JOHN, "laboratory", "2571-8",
        "Triglyceride [Mass/volume] in Serum or Plasma", "Triglycerides",
        "2023-03-15T11:00:00Z", 145, "mg/dL", "Normal",
    ),
    _observation(
        "demo-observation-3", JOHN, "laboratory", "4548-4",
        "Hemoglobin A1c/Hemoglobin.total in Blood", "Hemoglobin A1c",
        "2023-03-15T11:00:00Z", 7.8, "%", "High",
    ),
    _observation(
        "demo-observation-4", JOHN, "vital-signs", "29463-7",
        "Body Weight", "Body Weight", "2023-03-15T10:30:00Z", 92.5, "kg",
    ),
    _observation(
        "demo-observation-5", JOHN, "vital-signs", "8302-2",
        "Body height", "Body Height", "2023-03-15T10:30:00Z", 180, "cm",
    ),
    _observation(
        "demo-observation-6", JOHN, "laboratory", "2093-3",
        "Cholesterol [Mass/volume] in Serum or Plasma", "Total Cholesterol",
        "2023-03-15T11:00:00Z", 225, "mg/dL", "High",
    ),
    _observation(
        "demo-observation-7", EMILY, "laboratory", "718-7",
        "Hemoglobin [Mass/volume] in Blood", "Hemoglobin",
        "2023-02-10T09:15:00Z", 11.2, "g/dL", "Low",
    ),
    _observation(
        "demo-observation-8", EMILY, "survey", "44261-6",
        "Patient Health Questionnaire 9 item (PHQ-9) total score [Reported]", "PHQ-9 Score",
        "2023-02-10T09:30:00Z", 12, "{score}", "High",
    ),
    _observation(
        "demo-observation-9", JOHN, "vital-signs", "39156-5",
        "Body mass index (BMI) [Ratio]", "BMI", "2023-03-15T10:30:00Z", 28.5, "kg/m2", "High",
    ),
    _observation(
        "demo-observation-10", JOHN, "laboratory", "1558-6",
        "Glucose [Mass/volume] in Serum or Plasma --fasting", "Fasting Glucose",
        "2023-03-15T08:00:00Z", 142, "mg/dL", "High",
    ),
    _observation(
        "demo-observation-11", EMILY, "vital-signs", "8310-5",
        "Body temperature", "Body Temperature", "2023-02-10T09:00:00Z", 36.8, "Cel", "Normal",
    ),
    _observation(
        "demo-observation-12", EMILY, "laboratory", "6690-2",
        "Leukocytes [#/volume] in Blood by Automated count", "White Blood Cell Count",
        "2023-02-10T09:15:00Z", 7.2, "10*3/uL", "Normal",
    ),
]


def _medication(
    medication_id: str, subject: dict, requester: dict, code: str, display: str, text: str,
    authored_on: str, instructions: str, status: str = "active",
) -> dict[str, Any]:
    return {
        "resourceType": "MedicationRequest",
        "id": medication_id,
        "status": status,
        "intent": "order",
        "medicationCodeableConcept": _concept(RXNORM, code, display, text),
        "subject": subject,
        "authoredOn": authored_on,
        "requester": requester,
        "dosageInstruction": [{"text": instructions, "route": {"text": "Oral"}}],
    }


MEDICATIONS = [
    _medication(
        "demo-medication-1", JOHN, DR_WILLIAMS, "860975", "Metformin 500 MG Oral Tablet",
        "Metformin 500 mg oral tablet", "2022-10-15",
        "Take 1 tablet by mouth twice daily with meals",
    ),
    _medication(
        "demo-medication-2", JOHN, DR_WILLIAMS, "197361", "Amlodipine 5 MG Oral Tablet",
        "Amlodipine 5 mg oral tablet", "2022-11-01", "Take 1 tablet by mouth once daily",
    ),
    _medication(
        "demo-medication-3", EMILY, DR_JOHNSON, "617311", "Atorvastatin 40 MG Oral Tablet",
        "Atorvastatin 40 mg oral tablet", "2023-01-20", "Take 1 tablet by mouth at bedtime",
    ),
]


def _allergy(
    allergy_id: str, patient: dict, code: str, display: str, reaction: str, criticality: str,
    category: str,
) -> dict[str, Any]:
    return {
        "resourceType": "AllergyIntolerance",
        "id": allergy_id,
        "clinicalStatus": _concept(
            "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical", "active", "Active"
        ),
        "verificationStatus": _concept(
            "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification",
            "confirmed",
            "Confirmed",
        ),
        "type": "allergy",
        "category": [category],
        "criticality": criticality,
        "code": _concept(SNOMED, code, display, display),
        "patient": patient,
        "reaction": [{"manifestation": [{"text": reaction}]}],
    }


ALLERGIES = [
    _allergy("demo-allergy-1", JOHN, "764146007", "Penicillin", "Weal", "high", "medication"),
    _allergy("demo-allergy-2", EMILY, "227493005", "Cashew nuts", "Eruption of skin", "high", "food"),
    _allergy("demo-allergy-3", JOHN, "387458008", "Aspirin", "Upset stomach", "low", "medication"),
]


def _immunization(
    immunization_id: str, patient: dict, code: str, display: str, occurrence: str,
    manufacturer: str | None = None,
) -> dict[str, Any]:
    immunization: dict[str, Any] = {
        "resourceType": "Immunization",
        "id": immunization_id,
        "status": "completed",
        "vaccineCode": _concept(CVX, code, display),
        "patient": patient,
        "occurrenceDateTime": occurrence,
        "primarySource": True,
    }
    if manufacturer:
        immunization["manufacturer"] = {"display": manufacturer}
    return immunization


IMMUNIZATIONS = [
    _immunization(
        "demo-immunization-1", JOHN, "208",
        "SARS-COV-2 (COVID-19) vaccine, mRNA, spike protein, LNP, preservative free, 30 mcg/0.3mL dose",
        "2021-04-10", "Pfizer-BioNTech",
    ),
    _immunization(
        "demo-immunization-2", JOHN, "208",
        "SARS-COV-2 (COVID-19) vaccine, mRNA, spike protein, LNP, preservative free, 30 mcg/0.3mL dose",
        "2021-05-01", "Pfizer-BioNTech",
    ),
    _immunization(
        "demo-immunization-3", JOHN, "141", "Influenza, seasonal, injectable", "2022-10-05",
        "Sanofi Pasteur",
    ),
    _immunization("demo-immunization-4", EMILY, "21", "Varicella virus vaccine", "1994-05-12"),
    _immunization(
        "demo-immunization-5", EMILY, "09", "Tetanus and diphtheria toxoids (Td) vaccine",
        "2019-08-22", "GlaxoSmithKline",
    ),
]

COVERAGES = [
    {
        "resourceType": "Coverage",
        "id": "demo-coverage-1",
        "status": "active",
        "type": _concept(
            "http://terminology.hl7.org/CodeSystem/v3-ActCode", "EHCPOL", "extended healthcare",
            "Health Insurance",
        ),
        "subscriberId": "12345678",
        "beneficiary": JOHN,
        "payor": [_ref("Organization/demo-org-1", "National Health Insurance")],
        "class": [
            {"type": {"text": "Group"}, "value": "PREMIUM-PLAN-2023", "name": "Premium Health Plan 2023"},
            {"type": {"text": "Plan"}, "value": "PREMIUM-PLUS", "name": "Premium Plus"},
        ],
        "period": {"start": "2023-01-01", "end": "2023-12-31"},
    }
]


def _claim(
    claim_id: str, claim_type: str, created: str, code: str, display: str, text: str, total: float,
) -> dict[str, Any]:
    return {
        "resourceType": "Claim",
        "id": claim_id,
        "status": "active",
        "type": _concept(
            "http://terminology.hl7.org/CodeSystem/claim-type", claim_type, claim_type.title()
        ),
        "use": "claim",
        "patient": JOHN,
        "created": created,
        "provider": DR_WILLIAMS,
        "priority": {"coding": [{"code": "normal"}]},
        "insurance": [
            {
                "sequence": 1,
                "focal": True,
                "coverage": _ref("Coverage/demo-coverage-1", "National Health Insurance"),
            }
        ],
        "item": [
            {
                "sequence": 1,
                "productOrService": _concept(SNOMED, code, display, text),
                "servicedDate": created,
            }
        ],
        "total": {"value": total, "currency": "USD"},
    }


CLAIMS = [
    _claim(
        "demo-claim-1", "professional", "2023-04-15", "185345009", "Encounter for check up",
        "Annual Physical Examination", 250.00,
    ),
    _claim(
        "demo-claim-2", "pharmacy", "2023-05-02", "860975", "Metformin 500 MG Oral Tablet",
        "Metformin 500 mg (90-day supply)", 45.00,
    ),
]


def _adjudication(code: str, display: str, amount: float) -> dict[str, Any]:
    return {
        "category": _concept("http://terminology.hl7.org/CodeSystem/adjudication", code, display),
        "amount": {"value": amount, "currency": "USD"},
    }


EXPLANATION_OF_BENEFITS = [
    {
        "resourceType": "ExplanationOfBenefit",
        "id": "demo-eob-1",
        "status": "active",
        "type": _concept(
            "http://terminology.hl7.org/CodeSystem/claim-type", "professional", "Professional"
        ),
        "use": "claim",
        "patient": JOHN,
        "created": "2023-04-16",
        "insurer": _ref("Organization/demo-org-1", "National Health Insurance"),
        "provider": DR_WILLIAMS,
        "claim": {"reference": "Claim/demo-claim-1"},
        "outcome": "complete",
        "item": [
            {
                "sequence": 1,
                "productOrService": _concept(
                    SNOMED, "185345009", "Encounter for check up", "Annual Physical Examination"
                ),
                "adjudication": [
                    _adjudication("submitted", "Submitted Amount", 250.00),
                    _adjudication("deductible", "Deductible", 20.00),
                ],
            }
        ],
        "total": [
            _adjudication("submitted", "Submitted Amount", 250.00),
            _adjudication("eligible", "Eligible Amount", 230.00),
            _adjudication("benefit", "Benefit Amount", 207.00),
        ],
        "payment": {"amount": {"value": 207.00, "currency": "USD"}},
    }
]


def _practitioner(
    practitioner_id: str, family: str, given: str, text: str, specialty_code: str, specialty: str,
) -> dict[str, Any]:
    return {
        "resourceType": "Practitioner",
        "id": practitioner_id,
        "active": True,
        "name": [{"use": "official", "family": family, "given": [given], "prefix": ["Dr."], "text": text}],
        "qualification": [
            {"code": _concept("http://terminology.hl7.org/CodeSystem/v2-0360", "MD", "Doctor of Medicine", "Doctor of Medicine")},
            {"code": {"coding": [{"code": specialty_code, "display": specialty}], "text": specialty}},
        ],
    }


PRACTITIONERS = [
    _practitioner("demo-practitioner-1", "Williams", "Jane", "Dr. Jane Williams", "FPEND", "Family Practice Endocrinology"),
    _practitioner("demo-practitioner-2", "Johnson", "Robert", "Dr. Robert Johnson", "CARD", "Cardiology"),
    _practitioner("demo-practitioner-3", "Smith", "Sarah", "Dr. Sarah Smith", "NEUR", "Neurology"),
]

ORGANIZATIONS = [
    {
        "resourceType": "Organization",
        "id": "demo-organization-1",
        "active": True,
        "type": [{"coding": [{"code": "prov", "display": "Healthcare Provider"}], "text": "Healthcare Provider"}],
        "name": "Boston Medical Center",
        "telecom": [{"system": "phone", "value": "617-638-8000"}],
        "address": [{"line": ["1 Boston Medical Center Pl"], "city": "Boston", "state": "MA", "postalCode": "02118"}],
    },
    {
        "resourceType": "Organization",
        "id": "demo-organization-2",
        "active": True,
        "type": [{"coding": [{"code": "prov", "display": "Healthcare Provider"}], "text": "Healthcare Provider"}],
        "name": "Cambridge Health Alliance",
        "telecom": [{"system": "phone", "value": "617-665-1000"}],
        "address": [{"line": ["1493 Cambridge St"], "city": "Cambridge", "state": "MA", "postalCode": "02139"}],
    },
]

LOCATIONS = [
    {
        "resourceType": "Location",
        "id": "demo-location-1",
        "status": "active",
        "name": "Boston Medical Center - Main Campus",
        "type": [{"coding": [{"code": "HOSP", "display": "Hospital"}], "text": "Hospital"}],
        "address": {"line": ["1 Boston Medical Center Pl"], "city": "Boston", "state": "MA", "postalCode": "02118"},
        "managingOrganization": _ref("Organization/demo-organization-1", "Boston Medical Center"),
    },
    {
        "resourceType": "Location",
        "id": "demo-location-2",
        "status": "active",
        "name": "Cambridge Health Alliance - Primary Care",
        "type": [{"coding": [{"code": "OUTPHARM", "display": "Outpatient Clinic"}], "text": "Outpatient Clinic"}],
        "address": {"line": ["1493 Cambridge St"], "city": "Cambridge", "state": "MA", "postalCode": "02139"},
        "managingOrganization": _ref("Organization/demo-organization-2", "Cambridge Health Alliance"),
    },
]


def _appointment(
    appointment_id: str, status: str, appointment_type: str, reason: str, start: str, end: str,
    practitioner: dict, location: dict,
) -> dict[str, Any]:
    return {
        "resourceType": "Appointment",
        "id": appointment_id,
        "status": status,
        "appointmentType": {"coding": [{"code": appointment_type}]},
        "reasonCode": [{"text": reason}],
        "description": reason,
        "start": start,
        "end": end,
        "participant": [
            {"actor": JOHN, "status": "accepted"},
            {"actor": practitioner, "status": "accepted"},
            {"actor": location, "status": "accepted"},
        ],
    }


MAIN_CAMPUS = _ref("Location/demo-location-1", "Boston Medical Center - Main Campus")
PRIMARY_CARE = _ref("Location/demo-location-2", "Cambridge Health Alliance - Primary Care")

APPOINTMENTS = [
    _appointment(
        "demo-appointment-1", "fulfilled", "FOLLOWUP", "Diabetes follow-up appointment",
        "2023-04-15T09:00:00Z", "2023-04-15T09:30:00Z", DR_WILLIAMS, MAIN_CAMPUS,
    ),
    _appointment(
        "demo-appointment-2", "booked", "ROUTINE", "Blood pressure check",
        "2023-05-20T14:00:00Z", "2023-05-20T14:30:00Z", DR_JOHNSON, PRIMARY_CARE,
    ),
    _appointment(
        "demo-appointment-3", "booked", "WALKIN",
        "Follow-up for medication review and blood sugar check",
        "2023-06-01T11:00:00Z", "2023-06-01T11:30:00Z", DR_WILLIAMS, MAIN_CAMPUS,
    ),
]

PRACTITIONER_ROLES = [
    {
        "resourceType": "PractitionerRole",
        "id": "demo-practitionerrole-1",
        "active": True,
        "period": {"start": "2020-01-01"},
        "practitioner": DR_WILLIAMS,
        "organization": _ref("Organization/demo-organization-1", "Boston Medical Center"),
        "code": [{"coding": [{"code": "EP", "display": "Endocrinologist"}], "text": "Endocrinologist"}],
        "specialty": [_concept(SNOMED, "408475000", "Diabetic medicine", "Diabetes Care")],
        "location": [MAIN_CAMPUS],
    },
    {
        "resourceType": "PractitionerRole",
        "id": "demo-practitionerrole-2",
        "active": True,
        "period": {"start": "2019-05-01"},
        "practitioner": DR_JOHNSON,
        "organization": _ref("Organization/demo-organization-2", "Cambridge Health Alliance"),
        "code": [{"coding": [{"code": "CD", "display": "Cardiologist"}], "text": "Cardiologist"}],
        "specialty": [_concept(SNOMED, "394579002", "Cardiology", "Hypertension Management")],
        "location": [PRIMARY_CARE],
    },
]

RESOURCES_BY_TYPE: dict[str, list[dict[str, Any]]] = {
    "Patient": PATIENTS,
    "Condition": CONDITIONS,
    "Observation": OBSERVATIONS,
    "MedicationRequest": MEDICATIONS,
    "AllergyIntolerance": ALLERGIES,
    "Immunization": IMMUNIZATIONS,
    "Coverage": COVERAGES,
    "Claim": CLAIMS,
    "ExplanationOfBenefit": EXPLANATION_OF_BENEFITS,
    "Practitioner": PRACTITIONERS,
    "Organization": ORGANIZATIONS,
    "Location": LOCATIONS,
    "Appointment": APPOINTMENTS,
    "PractitionerRole": PRACTITIONER_ROLES,
}
