"""Health assistant chat bound to the current FHIR session."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.dependencies import CurrentFhirSession
from healthhub.schemas.chat import (
    ChatClearResponse,
    ChatExchangeResponse,
    ChatMessageCreate,
    ChatMessageResponse,
)
from healthhub.services import chat_service, session_service

router = APIRouter()


@router.get(
    "/messages",
    response_model=list[ChatMessageResponse],
    summary="Chat history",
    description="Messages of the current session, oldest first",
)
async def get_messages(
    session: CurrentFhirSession,
    limit: int | None = Query(None, ge=1, le=500, description="Keep only the last N messages"),
    db: AsyncSession = Depends(get_session),
) -> list[ChatMessageResponse]:
    messages = await session_service.get_chat_messages(db, session.id, limit=limit)
    return [ChatMessageResponse.model_validate(m) for m in messages]


@router.post(
    "/messages",
    response_model=ChatExchangeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask the health assistant",
    description=(
        "Store the message, answer it using the current patient's record as "
        "context and store the answer"
    ),
)
async def send_message(
    data: ChatMessageCreate,
    session: CurrentFhirSession,
    db: AsyncSession = Depends(get_session),
) -> ChatExchangeResponse:
    user_message, assistant_message = await chat_service.send_chat_message(
        db, session, data.content
    )
    return ChatExchangeResponse(
        user_message=ChatMessageResponse.model_validate(user_message),
        assistant_message=ChatMessageResponse.model_validate(assistant_message),
    )


@router.delete("/messages", response_model=ChatClearResponse, summary="Clear chat history")
async def clear_messages(
    session: CurrentFhirSession,
    db: AsyncSession = Depends(get_session),
) -> ChatClearResponse:
    return ChatClearResponse(success=await session_service.clear_chat_messages(db, session.id))
