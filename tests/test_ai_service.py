"""
Tests for listing_ingest/services/ai.py - OpenAI primary, Anthropic fallback, budget cap.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from listing_ingest.services.ai import (
    COST_TABLE,
    DAILY_SPEND_KEY,
    JSON_ONLY_INSTRUCTION,
    _check_daily_budget,
    _error_result,
    _provider_order,
    _record_spend,
    _sanitize_output_text,
    calculate_cost,
    generate_response,
)


def _ok(provider: str, content: str = "reply") -> dict:
    return {
        "content": content,
        "provider": provider,
        "model": "gpt-4o-mini" if provider == "openai" else "claude-haiku-4-5-20251001",
        "latency_ms": 1,
        "cost_usd": 0.001,
        "input_tokens": 10,
        "output_tokens": 5,
        "error": None,
        "timed_out": False,
    }


def _make_openai_response(text="Hello", prompt_tokens=40, completion_tokens=15):
    message = MagicMock()
    message.content = text
    choice = MagicMock()
    choice.message = message
    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    response = MagicMock()
    response.choices = [choice]
    response.usage = usage
    return response


def _make_anthropic_response(text="Hello", input_tokens=40, output_tokens=15):
    text_block = MagicMock()
    text_block.type = "text"
    text_block.text = text
    usage = MagicMock()
    usage.input_tokens = input_tokens
    usage.output_tokens = output_tokens
    response = MagicMock()
    response.content = [text_block]
    response.usage = usage
    return response


class TestCalculateCost:
    def test_gpt4o_mini_pricing(self):
        cost = calculate_cost("gpt-4o-mini", input_tokens=5000, output_tokens=2000)
        assert cost == pytest.approx((5000 * 0.15 + 2000 * 0.60) / 1_000_000)

    def test_haiku_pricing(self):
        cost = calculate_cost("claude-haiku-4-5-20251001", input_tokens=5000, output_tokens=2000)
        assert cost == pytest.approx((5000 * 1.00 + 2000 * 5.00) / 1_000_000)

    def test_unknown_model_uses_default_pricing(self):
        cost = calculate_cost("unknown-model", input_tokens=1000, output_tokens=500)
        assert cost == pytest.approx((1000 * 1.0 + 500 * 5.0) / 1_000_000)

    def test_cost_table_has_both_providers(self):
        assert "gpt-4o-mini" in COST_TABLE
        assert "claude-haiku-4-5-20251001" in COST_TABLE


class TestSanitizeOutput:
    def test_strips_think_blocks(self):
        assert _sanitize_output_text("<think>internal</think>\n\nclean") == "clean"

    def test_strips_json_fences(self):
        assert _sanitize_output_text('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_empty(self):
        assert _sanitize_output_text(None) == ""


class TestErrorResult:
    def test_returns_standardized_dict(self):
        result = _error_result("test error", timed_out=True)
        assert result["content"] == ""
        assert result["provider"] == "none"
        assert result["error"] == "test error"
        assert result["timed_out"] is True


class TestProviderOrder:
    def test_openai_primary_by_default(self, settings):
        assert _provider_order(settings) == ["openai", "anthropic"]

    def test_anthropic_primary(self, settings):
        settings.ai_primary_provider = "anthropic"
        assert _provider_order(settings) == ["anthropic", "openai"]

    def test_keyless_provider_skipped(self, settings):
        settings.openai_api_key = ""
        assert _provider_order(settings) == ["anthropic"]


class TestGenerateResponseRouting:
    async def test_primary_success(self):
        with (
            patch("listing_ingest.services.ai._generate_openai", new_callable=AsyncMock, return_value=_ok("openai")),
            patch("listing_ingest.services.ai._generate_anthropic", new_callable=AsyncMock) as anthropic,
        ):
            result = await generate_response("system", "user")

        assert result["provider"] == "openai"
        anthropic.assert_not_called()

    async def test_falls_back_when_primary_fails(self):
        with (
            patch(
                "listing_ingest.services.ai._generate_openai",
                new_callable=AsyncMock, side_effect=Exception("OpenAI down"),
            ),
            patch(
                "listing_ingest.services.ai._generate_anthropic",
                new_callable=AsyncMock, return_value=_ok("anthropic"),
            ),
        ):
            result = await generate_response("system", "user")

        assert result["provider"] == "anthropic"
        assert result["error"] is None

    async def test_both_fail_returns_error(self):
        with (
            patch("listing_ingest.services.ai._generate_openai", new_callable=AsyncMock, side_effect=Exception("a")),
            patch("listing_ingest.services.ai._generate_anthropic", new_callable=AsyncMock, side_effect=Exception("b")),
        ):
            result = await generate_response("system", "user")

        assert result["content"] == ""
        assert "anthropic failed" in result["error"]
        assert result["timed_out"] is False

    async def test_timeout_is_flagged(self, settings):
        settings.anthropic_api_key = ""

        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        with patch("listing_ingest.services.ai._generate_openai", side_effect=slow):
            result = await generate_response("system", "user", timeout_seconds=0.05)

        assert result["timed_out"] is True
        assert "timed out" in result["error"]

    async def test_no_keys(self, settings):
        settings.openai_api_key = ""
        settings.anthropic_api_key = ""
        result = await generate_response("system", "user")
        assert "No AI provider available" in result["error"]

    async def test_records_spend(self, fake_redis):
        with patch("listing_ingest.services.ai._generate_openai", new_callable=AsyncMock, return_value=_ok("openai")):
            await generate_response("system", "user")
        assert float(await fake_redis.get(DAILY_SPEND_KEY)) == pytest.approx(0.001)


class TestDailyBudget:
    async def test_disabled_when_zero(self, settings, fake_redis):
        settings.ai_daily_budget_usd = 0.0
        await fake_redis.set(DAILY_SPEND_KEY, "999")
        assert await _check_daily_budget() == (True, 0.0)

    async def test_blocks_when_exceeded(self, settings, fake_redis):
        settings.ai_daily_budget_usd = 5.0
        await fake_redis.set(DAILY_SPEND_KEY, "5.5")
        allowed, current = await _check_daily_budget()
        assert allowed is False
        assert current == pytest.approx(5.5)

    async def test_generate_response_refuses_over_budget(self, settings, fake_redis):
        settings.ai_daily_budget_usd = 1.0
        await fake_redis.set(DAILY_SPEND_KEY, "2.0")
        with patch("listing_ingest.services.ai._generate_openai", new_callable=AsyncMock) as openai:
            result = await generate_response("system", "user")
        openai.assert_not_called()
        assert "budget exceeded" in result["error"]

    async def test_record_spend_accumulates_with_ttl(self, fake_redis):
        await _record_spend(0.25)
        await _record_spend(0.25)
        assert float(await fake_redis.get(DAILY_SPEND_KEY)) == pytest.approx(0.5)
        assert DAILY_SPEND_KEY in fake_redis.expiry

    async def test_record_spend_ignores_zero(self, fake_redis):
        await _record_spend(0.0)
        assert await fake_redis.get(DAILY_SPEND_KEY) is None


class TestOpenAIProvider:
    async def test_json_mode_and_vision_model(self, settings):
        settings.openai_vision_model = "gpt-4o"
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_make_openai_response('{"a": 1}', 100, 50))

        with patch("openai.AsyncOpenAI", return_value=mock_client):
            from listing_ingest.services.ai import _generate_openai
            result = await _generate_openai(
                "system", "rank these", None, 0.2, "json", ["https://cdn.example.com/1.jpg"],
            )

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}
        user_content = kwargs["messages"][1]["content"]
        assert user_content[1] == {
            "type": "image_url",
            "image_url": {"url": "https://cdn.example.com/1.jpg", "detail": "low"},
        }
        assert result["content"] == '{"a": 1}'
        assert result["cost_usd"] == pytest.approx(calculate_cost("gpt-4o", 100, 50))


class TestAnthropicProvider:
    async def test_json_instruction_and_images(self, settings):
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=_make_anthropic_response("```json\n{}\n```"))

        with patch("anthropic.AsyncAnthropic", return_value=mock_client):
            from listing_ingest.services.ai import _generate_anthropic
            result = await _generate_anthropic(
                "system", "rank these", 500, 0.2, "json", ["https://cdn.example.com/1.jpg"],
            )

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"].endswith(JSON_ONLY_INSTRUCTION)
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"][0]["content"][0] == {
            "type": "image",
            "source": {"type": "url", "url": "https://cdn.example.com/1.jpg"},
        }
        assert result["content"] == "{}"
        assert result["provider"] == "anthropic"
