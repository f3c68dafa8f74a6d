"""FHIR identifier systems and extension URLs for healthhub.

These URIs follow FHIR conventions for system identifiers:
- Official systems use well-known URIs
- Custom systems and extensions use the healthhub namespace
"""

# Family member profiles managed by an account holder
FAMILY_MEMBER_SYSTEM = "https://healthhub.app/fhir/family-member"

# Relationship of a member to the account holder
RELATIONSHIP_EXTENSION_URL = "https://healthhub.app/fhir/extensions/family-relationship"

# HL7 v3 role codes for the relationship extension
ROLE_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-RoleCode"
