"""
Provider-agnostic async LLM client used by the LLM analysis provider.

Features:
  - Anthropic (Claude) and OpenAI SDKs, imported lazily
  - System prompt kept separate from the user message (prompt caching on Anthropic)
  - Retry with exponential backoff on transient failures
  - Prompt sanitization and size limits, token usage tracking

Usage:
    client = create_client()  # provider auto-detected from env
    prompt = CacheablePrompt(
        system="You are Grumpy Bro...",
        user_message="Evaluate the risk of launching now",
    )
    response = await client.call(prompt, role="persona", temperature=0.7)
    response.content
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

from ..security.prompt_guard import sanitize_for_prompt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_PROMPT_LENGTH = 60_000
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
}
API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}
RETRYABLE_ERRORS = {
    "RateLimitError",
    "APITimeoutError",
    "InternalServerError",
    "APIConnectionError",
}


class LLMUnavailableError(RuntimeError):
    """The provider SDK is missing or every attempt failed."""


@dataclass
class CacheablePrompt:
    """Stable system/context prefix plus the per-call user message."""

    system: str = ""
    context: str = ""
    user_message: str = ""


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0


@dataclass
class LLMResponse:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    provider: str = ""
    latency_ms: float = 0.0


class LLMClient:
    """
    Thin async wrapper over the Anthropic / OpenAI SDKs.

    Unlike a chat UI client this one raises on failure: the orchestrator
    turns a failed persona call into a degraded analysis record.
    """

    def __init__(
        self,
        provider: str = "anthropic",
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ):
        self._provider = provider.lower()
        if self._provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {self._provider}")
        self._model = model or DEFAULT_MODELS[self._provider]
        self._api_key = api_key or os.environ.get(API_KEY_ENV[self._provider], "")
        self._timeout = timeout
        self._max_retries = max_retries
        self._max_prompt_length = max_prompt_length
        self._client: Any = None
        self._total_usage = TokenUsage()

        if not self._api_key:
            logger.warning(f"[LLM] {API_KEY_ENV[self._provider]} not set -- calls will fail")
        self._init_client()
        logger.info(f"[LLM] Initialized {self._provider} client (model={self._model})")

    def _init_client(self) -> None:
        try:
            if self._provider == "anthropic":
                import anthropic

                self._client = anthropic.AsyncAnthropic(
                    api_key=self._api_key, timeout=self._timeout
                )
            else:
                import openai

                self._client = openai.AsyncOpenAI(
                    api_key=self._api_key, timeout=self._timeout
                )
        except ImportError:
            logger.error(
                f"[LLM] {self._provider} SDK not installed. "
                f"Install the 'llm' extra: pip install persona-council[llm]"
            )
            self._client = None

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    @property
    def total_usage(self) -> TokenUsage:
        return self._total_usage

    async def call(
        self,
        prompt: str | CacheablePrompt,
        role: str = "assistant",
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """
        Make a call with retries.

        Raises:
            LLMUnavailableError: SDK missing, or all attempts failed.
        """
        if isinstance(prompt, str):
            prompt = CacheablePrompt(user_message=prompt)
        prompt = self._sanitize_prompt(prompt)

        if self._client is None:
            raise LLMUnavailableError(f"{self._provider} client not initialized")

        start = time.time()
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                if self._provider == "anthropic":
                    response = await self._call_anthropic(prompt, temperature, max_tokens)
                else:
                    response = await self._call_openai(prompt, temperature, max_tokens)
                response.latency_ms = (time.time() - start) * 1000
                self._track_usage(response.usage)
                logger.debug(
                    f"[LLM] {self._provider}/{role}: {response.usage.input_tokens}in "
                    f"+ {response.usage.output_tokens}out ({response.latency_ms:.0f}ms)"
                )
                return response
            except Exception as e:
                last_error = e
                if type(e).__name__ in RETRYABLE_ERRORS and attempt < self._max_retries:
                    delay = min(RETRY_BASE_DELAY * (2**attempt), RETRY_MAX_DELAY)
                    logger.warning(
                        f"[LLM] Retryable error (attempt {attempt + 1}): "
                        f"{type(e).__name__}. Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                else:
                    break

        logger.error(f"[LLM] Call failed after {self._max_retries + 1} attempts: {last_error}")
        raise LLMUnavailableError(f"LLM call failed: {type(last_error).__name__}") from last_error

    def _sanitize_prompt(self, prompt: CacheablePrompt) -> CacheablePrompt:
        limit = self._max_prompt_length // 3
        return CacheablePrompt(
            system=sanitize_for_prompt(prompt.system, max_length=limit),
            context=sanitize_for_prompt(prompt.context, max_length=limit),
            user_message=sanitize_for_prompt(prompt.user_message, max_length=limit),
        )

    async def _call_anthropic(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        system_blocks = [
            {"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}
            for text in (prompt.system, prompt.context)
            if text
        ]
        kwargs: dict[str, Any] = {}
        if system_blocks:
            kwargs["system"] = system_blocks
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt.user_message}],
            **kwargs,
        )
        usage = response.usage
        return LLMResponse(
            content=response.content[0].text,
            usage=TokenUsage(
                input_tokens=getattr(usage, "input_tokens", 0),
                output_tokens=getattr(usage, "output_tokens", 0),
                cached_input_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
            ),
            model=self._model,
            provider="anthropic",
        )

    async def _call_openai(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        messages = [
            {"role": "system", "content": text}
            for text in (prompt.system, prompt.context)
            if text
        ]
        messages.append({"role": "user", "content": prompt.user_message})
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        usage = response.usage
        details = getattr(usage, "prompt_tokens_details", None)
        return LLMResponse(
            content=response.choices[0].message.content or "",
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                cached_input_tokens=getattr(details, "cached_tokens", 0) or 0,
            ),
            model=self._model,
            provider="openai",
        )

    def _track_usage(self, usage: TokenUsage) -> None:
        self._total_usage.input_tokens += usage.input_tokens
        self._total_usage.output_tokens += usage.output_tokens
        self._total_usage.cached_input_tokens += usage.cached_input_tokens


def create_client(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    **kwargs: Any,
) -> LLMClient:
    """
    Create a client, auto-detecting the provider when not given.

    Detection order: explicit argument, ANTHROPIC_API_KEY, OPENAI_API_KEY,
    then anthropic.
    """
    if provider is None:
        if os.environ.get("ANTHROPIC_API_KEY"):
            provider = "anthropic"
        elif os.environ.get("OPENAI_API_KEY"):
            provider = "openai"
        else:
            provider = "anthropic"
            logger.warning("[LLM] No API key found. Defaulting to anthropic.")
    return LLMClient(provider=provider, model=model, api_key=api_key, **kwargs)
