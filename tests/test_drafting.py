"""Tests for reminder drafters and the Claude client."""

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

from cpa_alerts.clients.claude import ClaudeClient, ClaudeResponse
from cpa_alerts.drafting import (
    ClaudeDrafter,
    TemplateDrafter,
    build_draft_prompt,
    parse_draft_reply,
)
from cpa_alerts.generators import generate_ar_alerts


@pytest.fixture
def alert(now, reference):
    return next(a for a in generate_ar_alerts(now, reference) if a.id == "ar-7")


@pytest.fixture
def reminder(alert):
    return alert.scheduled_reminders[0]


def claude_reply(content: str) -> ClaudeResponse:
    return ClaudeResponse(
        content=content,
        stop_reason="end_turn",
        usage={"input_tokens": 10, "output_tokens": 20},
    )


class TestTemplateDrafter:
    """Tests for the default drafter."""

    @pytest.mark.asyncio
    async def test_drafts_from_templates(self, alert, reminder):
        drafted = await TemplateDrafter(firm_name="Test Firm CPA").draft(alert, reminder)

        assert drafted.source == "template"
        assert drafted.subject == "Second Notice: Outstanding Balance - Pinnacle Real Estate Group"
        assert drafted.body.startswith("Dear Amanda Foster,")
        assert alert.client_url in drafted.body


class TestParseDraftReply:
    """Tests for model reply parsing."""

    def test_plain_json(self):
        drafted = parse_draft_reply('{"subject": "Hi", "body": "Please pay"}')

        assert drafted.subject == "Hi"
        assert drafted.source == "claude"

    def test_fenced_json(self):
        reply = '```json\n{"subject": "Hi", "body": "Please pay"}\n```'

        assert parse_draft_reply(reply).body == "Please pay"

    @pytest.mark.parametrize(
        "reply",
        ["Sorry, I cannot help", '{"subject": "Hi"}', "{broken", '["a", "b"]', ""],
    )
    def test_unusable_replies(self, reply):
        assert parse_draft_reply(reply) is None


class TestClaudeDrafter:
    """Tests for the Claude drafter and its fallback."""

    def test_prompt_includes_alert_context(self, alert, reminder):
        prompt = build_draft_prompt(alert, reminder, "Test Firm CPA")

        assert "Pinnacle Real Estate Group" in prompt
        assert "$567,000.00" in prompt
        assert "CC: Michael Torres" in prompt
        assert alert.invoices[0].number in prompt

    @pytest.mark.asyncio
    async def test_uses_model_reply(self, alert, reminder):
        client = MagicMock()
        client.generate = AsyncMock(
            return_value=claude_reply('{"subject": "Overdue balance", "body": "Dear Amanda"}')
        )

        drafted = await ClaudeDrafter(client=client).draft(alert, reminder)

        assert drafted.subject == "Overdue balance"
        assert drafted.source == "claude"
        client.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_falls_back_on_api_error(self, alert, reminder):
        client = MagicMock()
        client.generate = AsyncMock(
            side_effect=anthropic.APIConnectionError(
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
            )
        )

        drafted = await ClaudeDrafter(client=client).draft(alert, reminder)

        assert drafted.source == "template"

    @pytest.mark.asyncio
    async def test_falls_back_on_unparsable_reply(self, alert, reminder):
        client = MagicMock()
        client.generate = AsyncMock(return_value=claude_reply("Here is your email!"))

        drafted = await ClaudeDrafter(client=client).draft(alert, reminder)

        assert drafted.source == "template"


class TestClaudeClient:
    """Tests for ClaudeClient."""

    def test_client_initialization_with_custom_params(self):
        client = ClaudeClient(
            api_key="test-key",
            model="claude-sonnet-4-5",
            max_tokens=2048,
            temperature=0.0,
        )

        assert client._api_key == "test-key"
        assert client._model == "claude-sonnet-4-5"
        assert client._max_tokens == 2048
        assert client._temperature == 0.0

    @pytest.mark.asyncio
    async def test_generate_parses_text_blocks(self):
        message = MagicMock()
        message.content = [MagicMock(type="text", text="Hello")]
        message.stop_reason = "end_turn"
        message.usage = MagicMock(input_tokens=5, output_tokens=7)

        with patch("cpa_alerts.clients.claude.anthropic.AsyncAnthropic") as mock_cls:
            mock_cls.return_value.messages.create = AsyncMock(return_value=message)
            client = ClaudeClient(api_key="test-key")

            response = await client.generate("system", [{"role": "user", "content": "Hi"}])

        assert response.content == "Hello"
        assert response.usage == {"input_tokens": 5, "output_tokens": 7}
        kwargs = mock_cls.return_value.messages.create.await_args.kwargs
        assert kwargs["system"] == "system"
