from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from healthhub.schemas.utils import CamelModel


class ChatMessageCreate(CamelModel):
    content: str = Field(..., min_length=1, max_length=4000)


class ChatMessageResponse(CamelModel):
    id: int
    fhir_session_id: int
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime | None = None
    context_data: dict[str, Any] | None = None


class ChatExchangeResponse(CamelModel):
    user_message: ChatMessageResponse
    assistant_message: ChatMessageResponse


class ChatClearResponse(CamelModel):
    success: bool
