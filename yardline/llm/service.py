"""
LLM Service with Multi-Provider Routing

Provides a unified interface for the pipeline's LLM calls with:
- Multi-provider routing (Together.ai, OpenAI, Anthropic, Gemini)
- Automatic fallback on provider failures
- Structured output support via Pydantic, with tolerant JSON repair
- Circuit breaker and token-bucket rate limiting per provider
- Vision calls for yard photos

Uses the Together.ai SDK as primary provider and LiteLLM for the rest.
"""

import asyncio
import base64
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeVar, get_origin

import structlog
from pydantic import BaseModel, ValidationError

from .providers import (
    PROVIDER_CONFIGS,
    ModelTier,
    Provider,
    get_api_key,
    get_available_providers,
    get_model_for_tier,
)

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

ChatMessage = dict[str, Any]


# =============================================================================
# Call tracing
# =============================================================================


@dataclass
class LLMCall:
    """Trace of one provider attempt, returned alongside every completion."""

    node: str
    model: str
    provider: str = "unknown"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: int = 0
    success: bool = False
    error: str | None = None
    cost_usd: float = 0.0

    def finish(self, started: float, *, error: str | None = None) -> None:
        self.duration_ms = int((time.monotonic() - started) * 1000)
        self.error = error
        self.success = error is None


# =============================================================================
# Provider health
# =============================================================================


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitBreaker:
    """Stops calling a provider after repeated failures until a cool-down passes."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    failures: int = 0
    opened_at: float | None = None
    state: BreakerState = BreakerState.CLOSED
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def can_execute(self) -> bool:
        if self.state is BreakerState.OPEN:
            if self.clock() - (self.opened_at or 0.0) <= self.recovery_timeout:
                return False
            # One trial call; its outcome closes or re-opens the breaker.
            self.state = BreakerState.HALF_OPEN
        return True

    def record_success(self) -> None:
        self.failures = 0
        self.opened_at = None
        self.state = BreakerState.CLOSED

    def record_failure(self) -> None:
        self.failures += 1
        if self.state is BreakerState.HALF_OPEN or self.failures >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self.opened_at = self.clock()
            logger.warning("Circuit breaker opened", failures=self.failures)


class TokenBucket:
    """Per-provider request budget refilled continuously at `per_minute`."""

    def __init__(self, per_minute: int):
        self.capacity = float(per_minute)
        self.refill_per_second = per_minute / 60.0
        self.available = self.capacity
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()

    async def try_take(self) -> bool:
        async with self._lock:
            now = time.monotonic()
            self.available = min(self.capacity, self.available + (now - self._stamp) * self.refill_per_second)
            self._stamp = now
            if self.available < 1:
                return False
            self.available -= 1
            return True

    async def wait_for_token(self, timeout: float = 30.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if await self.try_take():
                return True
            await asyncio.sleep(0.1)
        return False


# =============================================================================
# Providers
# =============================================================================


def _read_completion(response: Any) -> tuple[str, int, int]:
    """(text, prompt_tokens, completion_tokens) from an OpenAI-shaped response."""
    text = response.choices[0].message.content or ""
    usage = getattr(response, "usage", None)
    if usage is None:
        return text, 0, 0
    return text, usage.prompt_tokens or 0, usage.completion_tokens or 0


class ChatProvider:
    """Chat completion against one backend; subclasses only issue the request."""

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        json_mode: bool = False,
    ) -> tuple[str, int, int]:
        request: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        response = await asyncio.wait_for(self._send(request), timeout=timeout)
        return _read_completion(response)

    async def _send(self, request: dict[str, Any]) -> Any:
        raise NotImplementedError


class TogetherProvider(ChatProvider):
    """Primary provider, via the Together SDK."""

    def __init__(self, api_key: str | None = None):
        from together import AsyncTogether

        self.client = AsyncTogether(api_key=api_key or get_api_key(Provider.TOGETHER))

    async def _send(self, request: dict[str, Any]) -> Any:
        return await self.client.chat.completions.create(**request)


class LiteLLMProvider(ChatProvider):
    """OpenAI, Anthropic and Gemini through LiteLLM."""

    def __init__(self, provider: Provider):
        import litellm

        litellm.set_verbose = False
        self.provider = provider
        self.api_key = get_api_key(provider)

    async def _send(self, request: dict[str, Any]) -> Any:
        import litellm

        return await litellm.acompletion(api_key=self.api_key, **request)


# =============================================================================
# Routing
# =============================================================================


class AllProvidersFailedError(Exception):
    """No configured provider produced a usable completion."""


class ProviderRouter:
    """
    Tries providers in priority order.

    A provider is skipped while its breaker is open or its bucket stays empty
    for five seconds. An empty completion counts as a failure.
    """

    def __init__(self):
        self.providers: dict[Provider, ChatProvider] = {}
        for provider in get_available_providers():
            if provider is Provider.TOGETHER:
                self.providers[provider] = TogetherProvider()
            else:
                self.providers[provider] = LiteLLMProvider(provider)
            logger.info("LLM provider ready", provider=provider.value)

        self.rate_limiters: dict[Provider, TokenBucket] = {
            p: TokenBucket(PROVIDER_CONFIGS[p].rate_limit_rpm) for p in self.providers
        }
        self.circuit_breakers: dict[Provider, CircuitBreaker] = {
            p: CircuitBreaker() for p in self.providers
        }

    def ordered(self) -> list[Provider]:
        return sorted(self.providers, key=lambda p: PROVIDER_CONFIGS[p].priority)

    async def complete_with_fallback(
        self,
        messages: list[ChatMessage],
        model_tier: str = "balanced",
        temperature: float = 0.0,
        max_tokens: int = 4096,
        requires_json: bool = False,
        node_name: str = "unknown",
        timeout: float | None = None,
    ) -> tuple[str, LLMCall]:
        """Return (text, trace) from the first provider that answers."""
        tier = ModelTier(model_tier)
        skipped: list[str] = []

        for provider in self.ordered():
            if not self.circuit_breakers[provider].can_execute():
                skipped.append(f"{provider.value}: circuit breaker open")
                continue
            if not await self.rate_limiters[provider].wait_for_token(timeout=5.0):
                skipped.append(f"{provider.value}: rate limited")
                continue

            call = await self._attempt(
                provider,
                messages,
                model=get_model_for_tier(provider, tier),
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=requires_json,
                node_name=node_name,
                timeout=timeout,
            )
            if isinstance(call, tuple):
                return call
            skipped.append(f"{provider.value}: {call.error}")

        logger.error("All providers failed", node=node_name, errors=skipped)
        raise AllProvidersFailedError(
            f"All providers failed: {'; '.join(skipped) or 'no providers configured'}"
        )

    async def _attempt(
        self,
        provider: Provider,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
        node_name: str,
        timeout: float | None,
    ) -> tuple[str, LLMCall] | LLMCall:
        """One provider call. Returns (text, trace) on success, the failed trace otherwise."""
        config = PROVIDER_CONFIGS[provider]
        breaker = self.circuit_breakers[provider]
        call = LLMCall(node=node_name, model=model, provider=provider.value)
        started = time.monotonic()
        try:
            text, call.prompt_tokens, call.completion_tokens = await self.providers[provider].complete(
                messages=messages,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout or config.default_timeout,
                json_mode=json_mode,
            )
            if not text.strip():
                raise ValueError("empty response")
        except Exception as exc:
            call.finish(started, error=str(exc) or type(exc).__name__)
            breaker.record_failure()
            logger.warning("Provider failed, trying next", provider=provider.value, node=node_name, error=call.error)
            return call

        call.finish(started)
        call.cost_usd = (
            call.prompt_tokens * config.cost_per_1m_input + call.completion_tokens * config.cost_per_1m_output
        ) / 1_000_000
        breaker.record_success()
        logger.debug(
            "LLM call completed",
            node=node_name,
            provider=provider.value,
            model=model,
            prompt_tokens=call.prompt_tokens,
            completion_tokens=call.completion_tokens,
            duration_ms=call.duration_ms,
        )
        return text, call


# =============================================================================
# JSON repair helpers
# =============================================================================


def _strip_fence(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.strip("`").strip()
        if raw.lower().startswith("json"):
            raw = raw[4:].strip()
    return raw


def coerce_list(value: Any) -> Any:
    """Turn a stringified list (or a lone object) into a real list."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    if not isinstance(value, str):
        return value
    raw = _strip_fence(value).lstrip(" :\n\t")
    if not raw:
        return []
    if raw[0] in "[{":
        try:
            return coerce_list(json.loads(raw))
        except json.JSONDecodeError:
            pass
    start = raw.find("[")
    end = raw.rfind("]")
    if start != -1 and end > start:
        try:
            return json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            return []
    if start != -1:
        # Missing closing bracket; close after the last complete object
        obj_end = raw.rfind("}")
        if obj_end > start:
            try:
                return json.loads(raw[start : obj_end + 1] + "]")
            except json.JSONDecodeError:
                return []
    return value


def extract_json_from_text(text: str) -> Any:
    """Best-effort parse of a model response that may wrap JSON in prose."""
    raw = _strip_fence(text or "")
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    obj_start = raw.find("{")
    obj_end = raw.rfind("}")
    arr_start = raw.find("[")
    arr_end = raw.rfind("]")
    candidates = []
    if obj_start != -1 and obj_end > obj_start:
        candidates.append((obj_start, raw[obj_start : obj_end + 1]))
    if arr_start != -1 and arr_end > arr_start:
        candidates.append((arr_start, raw[arr_start : arr_end + 1]))
    # Whichever structure opens first is the outermost one
    for _, candidate in sorted(candidates):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return {}


def _list_fields(output_schema: type[BaseModel]) -> list[str]:
    return [
        name
        for name, field in output_schema.model_fields.items()
        if get_origin(field.annotation) is list
    ]


def repair_parsed(parsed: Any, output_schema: type[BaseModel]) -> Any:
    """Coerce list-typed fields and wrap a bare list into the schema's list field."""
    list_fields = _list_fields(output_schema)
    if isinstance(parsed, list):
        if len(list_fields) != 1:
            return {}
        parsed = {list_fields[0]: parsed}
    if not isinstance(parsed, dict):
        return {}
    repaired = dict(parsed)
    for field_name in list_fields:
        if field_name in repaired:
            repaired[field_name] = coerce_list(repaired[field_name])
    return repaired


def parse_structured(text: str, output_schema: type[T]) -> T | None:
    """Validate a raw response against the schema, repairing where possible."""
    parsed = repair_parsed(extract_json_from_text(text), output_schema)
    try:
        return output_schema.model_validate(parsed)
    except ValidationError:
        return None


def _with_schema_instruction(
    messages: list[ChatMessage], output_schema: type[BaseModel]
) -> list[ChatMessage]:
    schema_instruction = f"""

You must respond with valid JSON that matches this schema:
{json.dumps(output_schema.model_json_schema(), indent=2)}

Respond ONLY with the JSON object, no additional text."""

    modified = []
    for msg in messages:
        if msg["role"] == "system":
            modified.append({"role": "system", "content": msg["content"] + schema_instruction})
        else:
            modified.append(msg)

    if not any(msg["role"] == "system" for msg in messages):
        modified.insert(0, {
            "role": "system",
            "content": f"You are an assistant that responds with structured JSON.{schema_instruction}",
        })
    return modified


# =============================================================================
# LLM Service (Main Interface)
# =============================================================================


class LLMService:
    """
    LLM Service with multi-provider routing and structured outputs.

    Structured calls never fail on a malformed response: whatever cannot be
    repaired comes back as the schema's default instance. Provider outages
    still raise AllProvidersFailedError.
    """

    def __init__(self):
        self.router = ProviderRouter()
        logger.info("LLM service configured", providers=[p.value for p in self.router.ordered()])

    async def complete_structured(
        self,
        messages: list[ChatMessage],
        output_schema: type[T],
        model_tier: str = "balanced",
        temperature: float = 0.0,
        max_tokens: int = 4096,
        node_name: str = "unknown",
        timeout: float | None = None,
    ) -> tuple[T, LLMCall]:
        """
        Make an LLM completion call with structured output.

        Args:
            messages: List of message dicts with role and content
            output_schema: Pydantic model class for output validation
            model_tier: "fast", "balanced", "powerful" or "vision"
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            node_name: Name of the calling node for tracing
            timeout: Per-provider timeout override

        Returns:
            Tuple of (validated Pydantic model, LLMCall trace)
        """
        text, call = await self.router.complete_with_fallback(
            messages=_with_schema_instruction(messages, output_schema),
            model_tier=model_tier,
            temperature=temperature,
            max_tokens=max_tokens,
            requires_json=True,
            node_name=node_name,
            timeout=timeout,
        )

        validated = parse_structured(text, output_schema)
        if validated is None:
            logger.warning(
                "Structured output did not validate, using defaults",
                node=node_name,
                schema=output_schema.__name__,
                preview=text[:200],
            )
            return output_schema(), call
        return validated, call

    async def complete_vision_structured(
        self,
        instructions: str,
        image: bytes,
        mime_type: str,
        output_schema: type[T],
        node_name: str = "vision",
        timeout: float | None = None,
    ) -> tuple[T, LLMCall]:
        """Send one image plus instructions and validate the structured reply."""
        data_url = f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
        messages: list[ChatMessage] = [
            {"role": "system", "content": instructions},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Analyze this photo."},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            },
        ]
        return await self.complete_structured(
            messages=messages,
            output_schema=output_schema,
            model_tier=ModelTier.VISION.value,
            max_tokens=1024,
            node_name=node_name,
            timeout=timeout,
        )


# =============================================================================
# Singleton
# =============================================================================

_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get the singleton LLM service instance."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
