"""OpenAI chat completions client shared by the chat and narrative services."""

import logging

from openai import AsyncOpenAI
from opentelemetry import trace

from healthhub.core.config import settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_openai_client: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI | None:
    """Lazily built client, or None when OPENAI_API_KEY is not configured."""
    global _openai_client
    if not settings.openai_enabled:
        return None
    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT,
        )
    return _openai_client


async def complete_chat(
    client: AsyncOpenAI,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
) -> str | None:
    """
    Run one chat completion and return the first choice's text.

    Returns None when the model answered with no content. API errors propagate.
    """
    with tracer.start_as_current_span("openai_chat_completion") as span:
        span.set_attribute("llm.model", settings.OPENAI_MODEL)
        span.set_attribute("llm.messages", len(messages))
        response = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            return None
        content = response.choices[0].message.content
        if response.usage:
            span.set_attribute("llm.total_tokens", response.usage.total_tokens)
        return content or None


async def close_openai_client() -> None:
    global _openai_client
    if _openai_client is not None:
        await _openai_client.close()
        _openai_client = None
