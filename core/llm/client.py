"""
LLM client abstraction supporting OpenAI (primary) and Claude (secondary).

Every call asks for a single JSON object back:
- OpenAI: chat completions with response_format {"type": "json_object"}
- Claude: Messages API; JSON is requested by instruction and parsed from text

Provider failures are translated into the core's typed errors:
- non-success HTTP status / no response -> UpstreamServiceError
- body that is not a JSON object          -> MalformedResponseError
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from api.errors import ConfigurationError, MalformedResponseError, UpstreamServiceError

if TYPE_CHECKING:
    from api.settings_store import CompletionSettings

logger = logging.getLogger(__name__)

_JSON_ONLY_INSTRUCTION = (
    "Respond with a single JSON object only. No markdown, no code fences, "
    "no text before or after the JSON."
)


class LLMProvider(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"


@dataclass
class LLMResponse:
    """Raw response from an LLM API call."""

    provider: LLMProvider
    raw_content: str
    model: str
    input_tokens: int
    output_tokens: int

    @property
    def text_content(self) -> str:
        """Return the plain text content of the response."""
        return self.raw_content


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse a completion body that must be exactly one JSON object."""
    text = raw.strip()
    # Strip markdown fences if present
    if text.startswith("```"):
        text = text.split("\n", 1)[-1]
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0]
    text = text.strip()

    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedResponseError(
            f"Completion response is not valid JSON: {e}", raw_response=raw
        )
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Completion response is a JSON {type(parsed).__name__}, expected an object",
            raw_response=raw,
        )
    return parsed


class LLMClient:
    """Unified LLM client. Instantiated per-request with settings."""

    def __init__(
        self,
        provider: LLMProvider,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 0,
        http_client: Any = None,
    ):
        if not api_key:
            raise ConfigurationError(
                f"No API key configured for provider '{provider.value}'"
            )
        self.provider = provider
        self.api_key = api_key
        self.model = model or self._default_model()
        self.timeout = timeout
        self.max_retries = max_retries
        # Optional httpx.AsyncClient handed to the SDK (custom transport, proxies)
        self.http_client = http_client

    def _default_model(self) -> str:
        if self.provider == LLMProvider.CLAUDE:
            return "claude-sonnet-4-6"
        return "gpt-4o"

    async def call_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> dict[str, Any]:
        """Send a prompt and return the single JSON object the model produced."""
        response = await self.call(system_prompt, user_prompt, max_tokens, temperature)
        logger.info(
            "Completion received from %s/%s (in=%d, out=%d tokens, %d chars)",
            response.provider.value,
            response.model,
            response.input_tokens,
            response.output_tokens,
            len(response.raw_content),
        )
        return parse_json_object(response.raw_content)

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Send a prompt in JSON mode and return the raw text response."""
        if self.provider == LLMProvider.CLAUDE:
            return await self._call_claude_json(
                system_prompt, user_prompt, max_tokens, temperature,
            )
        return await self._call_openai_json(
            system_prompt, user_prompt, max_tokens, temperature,
        )

    async def _call_openai_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMResponse:
        import openai

        client = openai.AsyncOpenAI(
            api_key=self.api_key,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=self.http_client,
        )
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.APIStatusError as e:
            logger.error("OpenAI API error: status=%d", e.status_code)
            raise UpstreamServiceError(
                f"OpenAI API error: {e.status_code}", status_code=e.status_code
            ) from e
        except openai.APIConnectionError as e:
            # Also covers APITimeoutError
            logger.error("OpenAI API unreachable: %s", e)
            raise UpstreamServiceError(f"OpenAI API unreachable: {e}") from e

        if not response.choices:
            raise MalformedResponseError("OpenAI response contained no choices")

        choice = response.choices[0]
        raw_text = choice.message.content or ""
        usage = response.usage

        return LLMResponse(
            provider=LLMProvider.OPENAI,
            raw_content=raw_text,
            model=response.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def _call_claude_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMResponse:
        import anthropic

        client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=self.http_client,
        )
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=f"{system_prompt}\n\n{_JSON_ONLY_INSTRUCTION}",
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIStatusError as e:
            logger.error("Anthropic API error: status=%d", e.status_code)
            raise UpstreamServiceError(
                f"Anthropic API error: {e.status_code}", status_code=e.status_code
            ) from e
        except anthropic.APIConnectionError as e:
            logger.error("Anthropic API unreachable: %s", e)
            raise UpstreamServiceError(f"Anthropic API unreachable: {e}") from e

        raw_text = ""
        for block in response.content:
            if block.type == "text":
                raw_text += block.text

        return LLMResponse(
            provider=LLMProvider.CLAUDE,
            raw_content=raw_text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


def build_client(http_client: Any = None) -> tuple[LLMClient, CompletionSettings]:
    """Create a client from the environment.

    The credential is read here, at call time; a missing key raises
    ConfigurationError before any network attempt.
    """
    from api.settings_store import get_completion_settings, require_api_key

    settings = get_completion_settings()
    client = LLMClient(
        provider=settings.provider,
        api_key=require_api_key(settings.provider),
        model=settings.model,
        timeout=settings.timeout_seconds,
        max_retries=settings.max_retries,
        http_client=http_client,
    )
    return client, settings
