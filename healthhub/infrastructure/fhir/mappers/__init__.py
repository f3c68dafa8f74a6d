"""FHIR resource mappers.

This package maps local rows to FHIR resources.
"""

from healthhub.infrastructure.fhir.mappers.member_mapper import FamilyMemberMapper

__all__ = ["FamilyMemberMapper"]
