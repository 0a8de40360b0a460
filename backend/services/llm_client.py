"""
Chat completion client for the admin assistant.

Uses the OpenAI SDK against any OpenAI-compatible endpoint.

Default endpoint:
    https://api.groq.com/openai/v1

Auth:
    LLM_API_KEY (or GROQ_API_KEY) passed as api_key
"""

import logging

from openai import OpenAI

from config import settings

logger = logging.getLogger(__name__)

_client = None


def is_configured() -> bool:
    return bool(settings.llm_api_key)


def _get_client() -> OpenAI:
    """Return cached OpenAI client, creating on first call."""
    global _client
    if _client is None:
        if not settings.llm_api_key:
            raise ValueError("LLM_API_KEY environment variable is required")
        _client = OpenAI(
            base_url=settings.llm_endpoint,
            api_key=settings.llm_api_key,
        )
    return _client


def complete(
    messages: list[dict],
    temperature: float = 0.7,
    max_tokens: int = 500,
) -> str:
    """
    Call the model with chat messages, return assistant response text.
    """
    client = _get_client()

    completion = client.chat.completions.create(
        model=settings.llm_model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    content = completion.choices[0].message.content
    if content is None:
        raise ValueError("Model returned empty response (no content)")
    return content
