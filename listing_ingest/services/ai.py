"""
AI service - OpenAI primary, Anthropic fallback (swappable via AI_PRIMARY_PROVIDER).
Every call carries a hard timeout and records cost, latency and token usage.
Daily spending cap via Redis to prevent runaway costs.
"""
import asyncio
import logging
import re
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Cost per million tokens (input/output)
COST_TABLE = {
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}

DAILY_SPEND_KEY = "listing_ingest:ai:daily_spend"
DAILY_SPEND_TTL = 86400  # 24 hours

JSON_ONLY_INSTRUCTION = "\n\nRespond with a single valid JSON object and nothing else."


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for a given model and token count."""
    costs = COST_TABLE.get(model, {"input": 1.0, "output": 5.0})
    return (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000


def _sanitize_output_text(text: str) -> str:
    """Remove hidden reasoning blocks and markdown code fences."""
    if not text:
        return ""
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    cleaned = cleaned.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, flags=re.DOTALL)
    if fenced:
        cleaned = fenced.group(1)
    return cleaned.strip()


async def _check_daily_budget(cost_usd: float = 0.0) -> tuple[bool, float]:
    """
    Check if adding cost_usd would exceed the daily AI budget.
    A budget of 0 disables the check. Returns (allowed, current_spend).
    """
    try:
        from listing_ingest.utils.redis_client import get_redis
        from listing_ingest.config import get_settings
        budget = get_settings().ai_daily_budget_usd
        if budget <= 0:
            return True, 0.0

        redis = await get_redis()
        current_raw = await redis.get(DAILY_SPEND_KEY)
        current = float(current_raw) if current_raw else 0.0

        if current + cost_usd > budget:
            return False, current
        return True, current
    except Exception as e:
        logger.debug("Budget check failed (allowing): %s", str(e))
        return True, 0.0


async def _record_spend(cost_usd: float) -> None:
    """Record AI spend in Redis with TTL-based daily reset."""
    if cost_usd <= 0:
        return
    try:
        from listing_ingest.utils.redis_client import get_redis
        redis = await get_redis()
        pipe = redis.pipeline()
        pipe.incrbyfloat(DAILY_SPEND_KEY, cost_usd)
        pipe.expire(DAILY_SPEND_KEY, DAILY_SPEND_TTL)
        await pipe.execute()
    except Exception as e:
        logger.debug("Spend recording failed: %s", str(e))


def _error_result(error_msg: str, timed_out: bool = False) -> dict:
    """Return a standardized error result dict."""
    return {
        "content": "",
        "provider": "none",
        "model": "none",
        "latency_ms": 0,
        "cost_usd": 0.0,
        "input_tokens": 0,
        "output_tokens": 0,
        "error": error_msg,
        "timed_out": timed_out,
    }


def _provider_order(settings) -> list[str]:
    """Configured primary first, the other provider as fallback, keyless ones skipped."""
    order = ["openai", "anthropic"]
    if settings.ai_primary_provider == "anthropic":
        order.reverse()
    keys = {"openai": settings.openai_api_key, "anthropic": settings.anthropic_api_key}
    return [name for name in order if keys[name]]


async def generate_response(
    system_prompt: str,
    user_message: str,
    max_tokens: Optional[int] = None,
    temperature: float = 0.3,
    response_format: Optional[str] = None,
    image_urls: Optional[list[str]] = None,
    timeout_seconds: Optional[float] = None,
) -> dict:
    """
    Generate AI response. Primary provider first, the other as fallback.

    Args:
        system_prompt: System instructions for the AI
        user_message: The user message (scraped listing text, summaries...)
        max_tokens: Override default max tokens
        temperature: Response randomness (0.0-1.0)
        response_format: "json" to request JSON output
        image_urls: Attach these images for a vision call
        timeout_seconds: Per-provider timeout override

    Returns:
        {
            "content": str,
            "provider": str,
            "model": str,
            "latency_ms": int,
            "cost_usd": float,
            "input_tokens": int,
            "output_tokens": int,
            "error": str|None,
            "timed_out": bool,
        }
    """
    from listing_ingest.config import get_settings
    settings = get_settings()
    timeout = timeout_seconds or settings.ai_timeout_seconds

    # Check daily budget before making any API call
    allowed, current_spend = await _check_daily_budget()
    if not allowed:
        logger.warning(
            "AI daily budget exceeded: $%.4f spent of $%.2f limit",
            current_spend, settings.ai_daily_budget_usd,
        )
        return _error_result(
            f"Daily AI budget exceeded (${current_spend:.2f}/${settings.ai_daily_budget_usd:.2f})"
        )

    providers = {"openai": _generate_openai, "anthropic": _generate_anthropic}
    last_error = "No AI provider available (check API keys)"
    timed_out = False

    for name in _provider_order(settings):
        try:
            result = await asyncio.wait_for(
                providers[name](
                    system_prompt, user_message, max_tokens, temperature,
                    response_format, image_urls,
                ),
                timeout=timeout,
            )
            await _record_spend(result.get("cost_usd", 0.0))
            return result
        except asyncio.TimeoutError:
            timed_out = True
            last_error = f"{name} timed out after {timeout}s"
            logger.error("%s timed out after %ss", name, timeout, extra={"provider": name})
        except Exception as e:
            timed_out = False
            last_error = f"{name} failed: {e}"
            logger.error("%s failed: %s", name, str(e), extra={"provider": name})

    return _error_result(last_error, timed_out=timed_out)


async def _generate_openai(
    system_prompt: str,
    user_message: str,
    max_tokens: Optional[int],
    temperature: float,
    response_format: Optional[str],
    image_urls: Optional[list[str]],
) -> dict:
    """Generate response using OpenAI API."""
    from openai import AsyncOpenAI
    from listing_ingest.config import get_settings
    settings = get_settings()

    model = settings.openai_vision_model if image_urls else settings.openai_model
    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.ai_timeout_seconds,
    )

    if image_urls:
        user_content = [{"type": "text", "text": user_message}]
        user_content += [
            {"type": "image_url", "image_url": {"url": url, "detail": "low"}}
            for url in image_urls
        ]
    else:
        user_content = user_message

    kwargs = {}
    if response_format == "json":
        kwargs["response_format"] = {"type": "json_object"}

    start = time.monotonic()
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens or settings.ai_max_tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        **kwargs,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = response.choices[0].message.content if response.choices else ""
    content = _sanitize_output_text(content)
    input_tokens = response.usage.prompt_tokens if response.usage else 0
    output_tokens = response.usage.completion_tokens if response.usage else 0

    return {
        "content": content,
        "provider": "openai",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
        "timed_out": False,
    }


async def _generate_anthropic(
    system_prompt: str,
    user_message: str,
    max_tokens: Optional[int],
    temperature: float,
    response_format: Optional[str],
    image_urls: Optional[list[str]],
) -> dict:
    """Generate response using Anthropic Claude API."""
    from anthropic import AsyncAnthropic
    from listing_ingest.config import get_settings
    settings = get_settings()

    model = settings.anthropic_model
    client = AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.ai_timeout_seconds,
    )

    if response_format == "json":
        system_prompt = system_prompt + JSON_ONLY_INSTRUCTION

    if image_urls:
        user_content = [
            {"type": "image", "source": {"type": "url", "url": url}}
            for url in image_urls
        ]
        user_content.append({"type": "text", "text": user_message})
    else:
        user_content = user_message

    start = time.monotonic()
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens or settings.ai_max_tokens,
        temperature=temperature,
        system=system_prompt,
        messages=[{"role": "user", "content": user_content}],
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = ""
    for block in response.content:
        if block.type == "text":
            content += block.text
    content = _sanitize_output_text(content)

    input_tokens = response.usage.input_tokens if response.usage else 0
    output_tokens = response.usage.output_tokens if response.usage else 0

    return {
        "content": content,
        "provider": "anthropic",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
        "timed_out": False,
    }
