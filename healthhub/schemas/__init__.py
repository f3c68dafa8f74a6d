"""Pydantic schemas for request validation and responses."""

from healthhub.schemas.responses import API_RESPONSES, AUTH_RESPONSES
from healthhub.schemas.utils import CamelModel

__all__ = [
    "API_RESPONSES",
    "AUTH_RESPONSES",
    "CamelModel",
]
