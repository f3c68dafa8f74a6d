"""Reusable Pydantic annotations and the camelCase base model.

The JSON surface of the API is camelCase (``fhirServer``, ``patientId``)
while Python attributes stay snake_case. Every request/response schema
inherits ``CamelModel`` so both spellings are accepted on input.
"""

import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel

# Base types
PositiveInt = Annotated[int, Field(gt=0, description="Positive integer")]
NonNegativeInt = Annotated[int, Field(ge=0, description="Non-negative integer")]

NonEmptyStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]

Email = Annotated[EmailStr, Field(description="Valid email address")]
Description = Annotated[str, Field(max_length=5000, description="Free text description")]
Title = Annotated[str, Field(min_length=1, max_length=255, description="Title")]

PersonName = Annotated[
    str,
    StringConstraints(min_length=2, max_length=100, strip_whitespace=True),
    Field(description="Person name (at least 2 characters)"),
]

Priority = Annotated[int, Field(ge=1, le=5, description="Priority from 1 (low) to 5 (urgent)")]
Percentage = Annotated[int, Field(ge=0, le=100, description="Progress percentage")]

# NPI numbers are exactly ten digits
NpiNumber = Annotated[str, StringConstraints(pattern=r"^\d{10}$")]


_PASSWORD_RULES = [
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
]


def _check_password_strength(value: str) -> str:
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


StrongPassword = Annotated[
    str,
    StringConstraints(min_length=8, max_length=128),
    AfterValidator(_check_password_strength),
    Field(description="At least 8 characters with upper, lower, digit and special character"),
]


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
