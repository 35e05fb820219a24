"""
LLM Provider Configuration and Routing

Supports multiple providers with automatic fallback:
- Together.ai (primary - open-source models)
- OpenAI (fallback - proprietary)
- Anthropic / Google Gemini (emergency fallback)
"""

import os
from dataclasses import dataclass
from enum import Enum

from yardline.config import get_settings


class Provider(str, Enum):
    """Supported LLM providers."""

    TOGETHER = "together"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class ModelTier(str, Enum):
    """Model tiers for different pipeline stages."""

    FAST = "fast"  # Filter, audit
    BALANCED = "balanced"  # Refine, categorize, extraction
    POWERFUL = "powerful"  # Reserved for replays and evaluation
    VISION = "vision"  # Photo analysis


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    name: Provider
    api_key_env: str
    models: dict[str, str]  # tier -> model_id
    rate_limit_rpm: int
    cost_per_1m_input: float
    cost_per_1m_output: float
    priority: int  # Lower = higher priority

    default_timeout: float = 60.0


PROVIDER_CONFIGS: dict[Provider, ProviderConfig] = {
    Provider.TOGETHER: ProviderConfig(
        name=Provider.TOGETHER,
        api_key_env="TOGETHER_API_KEY",
        models={
            ModelTier.FAST: "meta-llama/Llama-4-Scout-17B-16E-Instruct",
            ModelTier.BALANCED: "meta-llama/Llama-4-Maverick-17B-128E-Instruct-FP8",
            ModelTier.POWERFUL: "Qwen/Qwen3-235B-A22B-fp8-tput",
            ModelTier.VISION: "meta-llama/Llama-4-Maverick-17B-128E-Instruct-FP8",
        },
        rate_limit_rpm=200,
        cost_per_1m_input=0.18,
        cost_per_1m_output=0.18,
        priority=1,
    ),
    Provider.OPENAI: ProviderConfig(
        name=Provider.OPENAI,
        api_key_env="OPENAI_API_KEY",
        models={
            ModelTier.FAST: "gpt-4o-mini",
            ModelTier.BALANCED: "gpt-4o-mini",
            ModelTier.POWERFUL: "gpt-4o",
            ModelTier.VISION: "gpt-4o-mini",
        },
        rate_limit_rpm=500,
        cost_per_1m_input=0.15,
        cost_per_1m_output=0.60,
        priority=2,
    ),
    Provider.ANTHROPIC: ProviderConfig(
        name=Provider.ANTHROPIC,
        api_key_env="ANTHROPIC_API_KEY",
        models={
            ModelTier.FAST: "claude-3-5-haiku-20241022",
            ModelTier.BALANCED: "claude-sonnet-4-20250514",
            ModelTier.POWERFUL: "claude-sonnet-4-20250514",
            ModelTier.VISION: "claude-sonnet-4-20250514",
        },
        rate_limit_rpm=200,
        cost_per_1m_input=3.00,
        cost_per_1m_output=15.00,
        priority=10,
    ),
    Provider.GEMINI: ProviderConfig(
        name=Provider.GEMINI,
        api_key_env="GEMINI_API_KEY",
        models={
            ModelTier.FAST: "gemini/gemini-2.5-flash",
            ModelTier.BALANCED: "gemini/gemini-2.5-flash",
            ModelTier.POWERFUL: "gemini/gemini-2.5-pro",
            ModelTier.VISION: "gemini/gemini-2.5-flash",
        },
        rate_limit_rpm=300,
        cost_per_1m_input=0.30,
        cost_per_1m_output=2.50,
        priority=11,
    ),
}


def get_api_key(provider: Provider) -> str | None:
    """Settings value first, then the raw environment variable."""
    configured = getattr(get_settings(), f"{provider.value}_api_key", None)
    return configured or os.getenv(PROVIDER_CONFIGS[provider].api_key_env)


def get_available_providers() -> list[Provider]:
    """Get list of providers with configured API keys (sorted by priority)."""
    available = [provider for provider in PROVIDER_CONFIGS if get_api_key(provider)]
    return sorted(available, key=lambda p: PROVIDER_CONFIGS[p].priority)


def get_model_for_tier(provider: Provider, tier: ModelTier) -> str:
    """Model ID for a provider and tier. Together text tiers follow the settings."""
    if provider is Provider.TOGETHER and tier is not ModelTier.VISION:
        return getattr(get_settings(), f"default_model_{tier.value}")
    return PROVIDER_CONFIGS[provider].models[tier]
