"""Chat-completion client used by the post-attempt recommendation hook.

Usage:
    from quiz_engine.services.ai_client import ai_chat, ai_configured

    if ai_configured():
        text = await ai_chat(messages=[...], use_case="cheap", max_tokens=300)

Models starting with "claude-" go to Anthropic, everything else to the
provider named by the AI_PROVIDER setting (OpenAI by default).
"""

import logging
from enum import Enum

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from quiz_engine.config import settings

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


_ANTHROPIC_PREFIXES = ("claude-",)


def _resolve_model(use_case: str | None) -> str:
    if use_case == "cheap" and settings.cheap_model:
        return settings.cheap_model
    return settings.model_name


def _detect_provider(model: str) -> AIProvider:
    model_lower = model.lower()
    for prefix in _ANTHROPIC_PREFIXES:
        if model_lower.startswith(prefix):
            return AIProvider.ANTHROPIC
    try:
        return AIProvider(settings.ai_provider.lower())
    except ValueError:
        return AIProvider.OPENAI


def ai_configured(use_case: str | None = None) -> bool:
    """True when the provider for this use case has an API key."""
    provider = _detect_provider(_resolve_model(use_case))
    if provider == AIProvider.ANTHROPIC:
        return bool(settings.anthropic_api_key)
    return bool(settings.api_key)


async def ai_chat(
    messages: list[dict],
    *,
    use_case: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1024,
) -> str:
    """Send a chat completion and return the assistant text."""
    model = _resolve_model(use_case)
    provider = _detect_provider(model)

    if provider == AIProvider.ANTHROPIC:
        return await _anthropic_chat(messages, model, temperature, max_tokens)
    return await _openai_chat(messages, model, temperature, max_tokens)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(Exception),
    before_sleep=lambda retry_state: logger.warning(
        "OpenAI call failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    ),
    reraise=True,
)
async def _openai_chat(messages: list[dict], model: str, temperature: float, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=settings.api_key)
    response = await client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return response.choices[0].message.content


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(Exception),
    before_sleep=lambda retry_state: logger.warning(
        "Anthropic call failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    ),
    reraise=True,
)
async def _anthropic_chat(messages: list[dict], model: str, temperature: float, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)

    # Anthropic takes the system prompt as a parameter, not a message
    system_text = "\n".join(m["content"] for m in messages if m["role"] == "system")
    chat_messages = [
        {"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"
    ]

    kwargs: dict = {
        "model": model,
        "messages": chat_messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    response = await client.messages.create(**kwargs)
    return response.content[0].text
