"""LLM client used to generate questions and recommendations.

Every provider is reached through the OpenAI-compatible chat completions
API (LM Studio locally, or the OpenAI, Anthropic and Gemini endpoints).
Provider endpoints and models come from the app config; generation
defaults come from its ``llm`` section.

Callers mostly need ``simple_json``: generated questions and
recommendations are JSON arrays, so extraction accepts arrays as well as
objects and a malformed reply gets one repair round-trip.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from openai import APIConnectionError, APITimeoutError, OpenAI, OpenAIError

from examprep.config.app_config import get_provider_config, load_app_config

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Placeholder key for servers that do not check it (LM Studio)
LOCAL_API_KEY = "lm-studio"

# Providers that accept response_format={"type": "json_object"}
JSON_OBJECT_PROVIDERS = {"openai"}

JSON_REPAIR_PROMPT = """Your previous reply was not valid JSON:
<<<
{invalid_output}
>>>

Reply again with the same content as valid JSON only (no prose, no markdown)."""

# Reasoning models wrap their scratchpad in tags that break JSON parsing
_REASONING_BLOCK = re.compile(
    r"<(think|thinking|analysis|reasoning)>.*?</\1>", re.DOTALL | re.IGNORECASE
)
_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json(text: str) -> Any | None:
    """Pull a JSON array or object out of a model reply.

    Reasoning blocks are dropped first. Then the whole reply, a fenced
    code block, and finally the span from the first bracket to its last
    matching closer are tried in turn.

    Returns:
        The parsed value, or None when nothing parses.
    """
    cleaned = _REASONING_BLOCK.sub("", text).strip()

    attempts = [cleaned]
    fence = _CODE_FENCE.search(cleaned)
    if fence:
        attempts.append(fence.group(1).strip())

    openers = sorted(
        (index, closer)
        for opener, closer in (("[", "]"), ("{", "}"))
        if (index := cleaned.find(opener)) >= 0
    )
    for start, closer in openers:
        end = cleaned.rfind(closer)
        if end > start:
            attempts.append(cleaned[start : end + 1])

    for candidate in attempts:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class LLMConfig:
    """Connection and generation settings for one provider."""

    provider: str = "lmstudio"
    base_url: str | None = "http://localhost:1234/v1"
    model: str = "default"
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: int = 120
    json_repair_retries: int = 1
    api_key: str | None = None

    @classmethod
    def from_app_config(cls, provider: str | None = None) -> LLMConfig:
        """Settings for a provider (the configured default if None).

        Raises:
            LLMError: If the provider is not configured
        """
        app_config = load_app_config()
        name = provider or app_config.default_provider
        provider_config = get_provider_config(name)
        if provider_config is None:
            raise LLMError(f"LLM provider not configured: {name}")

        api_key = provider_config.get_api_key()
        if api_key is None and provider_config.api_key_env is None:
            api_key = LOCAL_API_KEY

        defaults = app_config.llm
        return cls(
            provider=name,
            base_url=provider_config.base_url,
            model=provider_config.default_model,
            temperature=defaults.temperature,
            max_tokens=defaults.max_tokens,
            timeout=defaults.timeout,
            json_repair_retries=defaults.json_repair_retries,
            api_key=api_key,
        )


@dataclass
class Message:
    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """A completion with its token usage and latency."""

    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: int = 0


class LLMError(Exception):
    """Error during LLM interaction."""

    pass


class LLMConnectionError(LLMError):
    """The provider could not be reached or timed out."""

    pass


class LLMResponseError(LLMError):
    """The provider answered with nothing usable."""

    pass


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """Chat client over an OpenAI-compatible endpoint."""

    def __init__(self, config: LLMConfig | None = None, provider: str | None = None):
        """Initialize the client.

        Args:
            config: Explicit settings (built from the app config if None)
            provider: Provider to load from the app config when config is None
        """
        self.config = config or LLMConfig.from_app_config(provider)
        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key or LOCAL_API_KEY,
            timeout=self.config.timeout,
        )
        logger.debug(
            "llm_client_initialized",
            provider=self.config.provider,
            model=self.config.model,
        )

    def chat(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send one chat completion request.

        Raises:
            LLMConnectionError: If the provider cannot be reached
            LLMResponseError: If the reply has no choices
            LLMError: For any other provider error
        """
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if json_mode and self.config.provider in JSON_OBJECT_PROVIDERS:
            request["response_format"] = {"type": "json_object"}

        started = time.monotonic()
        try:
            response = self._client.chat.completions.create(**request)
        except (APIConnectionError, APITimeoutError) as e:
            raise LLMConnectionError(
                f"Could not reach {self.config.provider} at {self.config.base_url}: {e}"
            ) from e
        except OpenAIError as e:
            raise LLMError(f"{self.config.provider} request failed: {e}") from e
        latency_ms = int((time.monotonic() - started) * 1000)

        if not response.choices:
            raise LLMResponseError(f"Empty response from {self.config.provider}")

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.debug(
            "llm_response",
            provider=self.config.provider,
            model=response.model,
            tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
        )
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            provider=self.config.provider,
            usage=usage,
            latency_ms=latency_ms,
        )

    def _try_parse_json(self, content: str) -> Any | None:
        return extract_json(content)

    def chat_json(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        """Chat expecting a JSON array or object, repairing a bad reply.

        Raises:
            LLMResponseError: If no valid JSON comes back after the repairs
        """
        conversation = list(messages)
        response = self.chat(conversation, temperature, max_tokens, json_mode=True)
        parsed = self._try_parse_json(response.content)

        repairs = 0
        while parsed is None and repairs < self.config.json_repair_retries:
            repairs += 1
            logger.warning(
                "llm_json_invalid",
                provider=self.config.provider,
                attempt=repairs,
                preview=response.content[:100],
            )
            conversation += [
                Message(role="assistant", content=response.content),
                Message(
                    role="user",
                    content=JSON_REPAIR_PROMPT.format(invalid_output=response.content[:1000]),
                ),
            ]
            response = self.chat(conversation, temperature, max_tokens, json_mode=True)
            parsed = self._try_parse_json(response.content)

        if parsed is None:
            raise LLMResponseError(f"No valid JSON from {self.config.provider}: {response.content[:200]}")
        if repairs:
            logger.info("llm_json_repaired", attempts=repairs)
        return parsed

    def simple_json(
        self,
        system_prompt: str,
        user_message: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        """Single-turn chat expecting JSON."""
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]
        return self.chat_json(messages, temperature=temperature, max_tokens=max_tokens)
