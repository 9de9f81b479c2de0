"""Claude (Anthropic) LLM client used for optional reminder drafting."""

from dataclasses import dataclass
from typing import Any

import anthropic
import structlog

from cpa_alerts.config import get_settings
from cpa_alerts.errors import ConfigurationError

logger = structlog.get_logger(__name__)


@dataclass
class ClaudeResponse:
    """Response from Claude API."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class ClaudeClient:
    """Thin async wrapper around Anthropic's messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.anthropic_api_key is None:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        self._api_key = api_key or settings.anthropic_api_key.get_secret_value()
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _parse_response(self, response: anthropic.types.Message) -> ClaudeResponse:
        """Parse Anthropic response into our format."""
        content = "".join(block.text for block in response.content if block.type == "text")

        return ClaudeResponse(
            content=content,
            stop_reason=response.stop_reason or "end_turn",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
    ) -> ClaudeResponse:
        """Generate a response from Claude.

        Args:
            system_prompt: The system prompt defining the drafting behavior.
            messages: Conversation as a list of ``{"role", "content"}`` dicts.

        Returns:
            ClaudeResponse with text content and usage info.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system_prompt,
                messages=messages,
            )
        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise

        parsed = self._parse_response(response)
        self._logger.info(
            "response_generated",
            stop_reason=parsed.stop_reason,
            input_tokens=parsed.usage["input_tokens"],
            output_tokens=parsed.usage["output_tokens"],
        )
        return parsed
