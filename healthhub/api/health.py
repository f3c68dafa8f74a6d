import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.cache import redis_status
from healthhub.core.config import settings
from healthhub.core.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok", "error"] = Field(..., description="Database reachability")
    cache: Literal["ok", "error", "disabled"] = Field(
        "disabled", description="Shared Redis cache; errors only degrade caching"
    )
    version: str = Field(settings.VERSION, description="Running API version")


@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_session)):
    """The database must answer; an unreachable cache is reported but not fatal."""
    try:
        result = await db.execute(select(text("1")))
        result.scalar_one()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Database unavailable: {e!s}") from None

    return HealthResponse(status="ok", cache=await redis_status())
