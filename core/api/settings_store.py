"""
Runtime settings read from the process environment.

Settings are loaded fresh on every call so that credential rotation (or a
test monkeypatching the environment) takes effect without a restart.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

from api.errors import ConfigurationError
from llm.client import LLMProvider

_DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o",
    LLMProvider.CLAUDE: "claude-sonnet-4-6",
}

# Environment variable holding the bearer credential for each provider
_API_KEY_ENV = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.CLAUDE: "ANTHROPIC_API_KEY",
}


class CompletionSettings(BaseModel):
    provider: LLMProvider = LLMProvider.OPENAI
    model: str
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=0, ge=0)


class OCRSettings(BaseModel):
    language: str = "eng"
    dpi: int = Field(default=300, ge=72)
    max_pages: int = Field(default=20, gt=0)
    page_timeout_seconds: float = Field(default=60.0, gt=0)
    total_timeout_seconds: float = Field(default=300.0, gt=0)


def _env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def get_completion_settings() -> CompletionSettings:
    """Return completion settings (loaded fresh from the environment)."""
    raw_provider = _env("LLM_PROVIDER", LLMProvider.OPENAI.value).lower()
    try:
        provider = LLMProvider(raw_provider)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported LLM_PROVIDER '{raw_provider}'. "
            f"Allowed providers: {', '.join(p.value for p in LLMProvider)}."
        )

    model_var = "OPENAI_MODEL" if provider == LLMProvider.OPENAI else "CLAUDE_MODEL"
    try:
        return CompletionSettings(
            provider=provider,
            model=_env(model_var, _DEFAULT_MODELS[provider]),
            temperature=float(_env("LLM_TEMPERATURE", "0.3")),
            max_tokens=int(_env("LLM_MAX_TOKENS", "4096")),
            timeout_seconds=float(_env("LLM_TIMEOUT_SECONDS", "60")),
            max_retries=int(_env("LLM_MAX_RETRIES", "0")),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid completion settings: {e}")


def get_ocr_settings() -> OCRSettings:
    """Return OCR fallback settings (loaded fresh from the environment)."""
    try:
        return OCRSettings(
            language=_env("OCR_LANGUAGE", "eng"),
            dpi=int(_env("OCR_DPI", "300")),
            max_pages=int(_env("OCR_MAX_PAGES", "20")),
            page_timeout_seconds=float(_env("OCR_PAGE_TIMEOUT_SECONDS", "60")),
            total_timeout_seconds=float(_env("OCR_TOTAL_TIMEOUT_SECONDS", "300")),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid OCR settings: {e}")


def get_api_key_for_provider(provider: LLMProvider | str) -> Optional[str]:
    """Get the API key for the given provider, or None when it is not set."""
    provider = LLMProvider(provider)
    key = os.getenv(_API_KEY_ENV[provider], "").strip()
    return key or None


def require_api_key(provider: LLMProvider | str) -> str:
    """Like get_api_key_for_provider, but a missing key is a ConfigurationError."""
    provider = LLMProvider(provider)
    key = get_api_key_for_provider(provider)
    if not key:
        raise ConfigurationError(
            f"{_API_KEY_ENV[provider]} is not configured"
        )
    return key
