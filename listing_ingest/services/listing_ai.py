"""
Listing AI calls.

Call 1 - base config extraction from scraped text.
Call 2 - title, subtitle and 6 highlights.
Call 3 - vision ranking of up to 10 photos for the hero banner.

Each call goes through services.ai.generate_response (primary/fallback provider,
timeout, cost tracking) and validates the answer before returning it.
"""
import json
import logging
import math
from typing import Any, Optional

from listing_ingest.errors import AICallError, AIParseError, AITimeoutError
from listing_ingest.prompts import listing_config, title as title_prompts, vision as vision_prompts
from listing_ingest.schemas.pipeline import ImageAnalysisResult, ImageScore

logger = logging.getLogger(__name__)

CALL1_TEMPERATURE = 0.3
CALL2_TEMPERATURE = 0.8
CALL3_TEMPERATURE = 0.2
SUB_SCORE_FIELDS = ("composition", "lighting", "wow_factor", "quality")


def _usage(result: dict) -> dict:
    return {
        "provider": result.get("provider"),
        "model": result.get("model"),
        "input_tokens": result.get("input_tokens", 0),
        "output_tokens": result.get("output_tokens", 0),
        "cost_usd": result.get("cost_usd", 0.0),
    }


def _raise_for_error(result: dict, call: str) -> None:
    error = result.get("error")
    if not error:
        return
    if result.get("timed_out"):
        raise AITimeoutError(f"{call} timed out: {error}")
    raise AICallError(f"{call} failed: {error}")


def parse_json_object(content: str) -> dict:
    """Parse a model answer that must be a JSON object."""
    if not content:
        raise AIParseError("Empty AI response", raw="")
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        # Some models wrap the object in prose
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            raise AIParseError("AI response is not valid JSON", raw=content)
        try:
            parsed = json.loads(content[start:end + 1])
        except json.JSONDecodeError as e:
            raise AIParseError(f"AI response is not valid JSON: {e}", raw=content) from e
    if not isinstance(parsed, dict):
        raise AIParseError("AI response is not a JSON object", raw=content)
    return parsed


def _dedupe_photos(photos: Any) -> list:
    if not isinstance(photos, list):
        return []
    seen = set()
    result = []
    for photo in photos:
        url = photo.get("url") if isinstance(photo, dict) else photo
        if not isinstance(url, str) or not url or url in seen:
            continue
        seen.add(url)
        result.append(photo if isinstance(photo, dict) else {"url": url, "alt": ""})
        if len(result) >= listing_config.MAX_PHOTOS:
            break
    return result


async def extract_listing_config(listing_text: str) -> tuple[dict, dict]:
    """
    Call 1. Returns (config, call_info) where call_info carries duration_ms and usage.

    Raises:
        AICallError / AITimeoutError when every provider fails.
        AIParseError when the answer is not a JSON object.
    """
    from listing_ingest.services.ai import generate_response

    result = await generate_response(
        system_prompt=listing_config.SYSTEM_MESSAGE,
        user_message=listing_config.build_config_prompt(listing_text),
        temperature=CALL1_TEMPERATURE,
        response_format="json",
    )
    _raise_for_error(result, "Call 1")

    config = parse_json_object(result["content"])
    if "photos" in config:
        config["photos"] = _dedupe_photos(config["photos"])
    config = listing_config.sort_config_to_template_order(config)

    logger.info(
        "Call 1 extracted config: %d keys, %d photos (%dms)",
        len(config), len(config.get("photos") or []), result.get("latency_ms", 0),
        extra={"call": "call1", "provider": result.get("provider"), "duration_ms": result.get("latency_ms", 0)},
    )
    return config, {"duration_ms": result.get("latency_ms", 0), "usage": _usage(result)}


def _truncate_title(text: str) -> str:
    text = text.strip()
    if len(text) <= title_prompts.MAX_TITLE_CHARS:
        return text
    cut = text[: title_prompts.MAX_TITLE_CHARS]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:-")


def _normalize_highlights(raw: Any) -> list[dict]:
    if not isinstance(raw, list):
        raise AIParseError("Invalid JSON: missing or invalid highlights field")

    icons = title_prompts.all_icon_names()
    highlights = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        value = str(item.get("value") or "").strip()
        if not title and not value:
            continue
        icon = item.get("icon") if item.get("icon") in icons else title_prompts.FALLBACK_ICON
        highlights.append({"title": title, "value": value, "icon": icon})

    if len(highlights) < title_prompts.HIGHLIGHT_COUNT:
        raise AIParseError(
            f"Expected {title_prompts.HIGHLIGHT_COUNT} highlights, got {len(highlights)}"
        )
    return highlights[: title_prompts.HIGHLIGHT_COUNT]


async def generate_title_and_highlights(property_text: str, language: str = "") -> dict:
    """
    Call 2.

    Returns:
        {"title": str, "subtitle": str, "highlights": [...], "duration_ms": int, "usage": dict}
    """
    from listing_ingest.services.ai import generate_response

    result = await generate_response(
        system_prompt=title_prompts.SYSTEM_MESSAGE,
        user_message=title_prompts.build_title_prompt(property_text, language),
        temperature=CALL2_TEMPERATURE,
        response_format="json",
    )
    _raise_for_error(result, "Call 2")

    parsed = parse_json_object(result["content"])
    title = parsed.get("title")
    if not isinstance(title, str) or not title.strip():
        raise AIParseError("Invalid JSON: missing or invalid title field", raw=result["content"])

    subtitle = parsed.get("subtitle")
    response = {
        "title": _truncate_title(title),
        "subtitle": subtitle.strip() if isinstance(subtitle, str) else "",
        "highlights": _normalize_highlights(parsed.get("highlights")),
        "duration_ms": result.get("latency_ms", 0),
        "usage": _usage(result),
    }
    logger.info(
        "Call 2 generated title %r with %d highlights",
        response["title"], len(response["highlights"]),
        extra={"call": "call2", "provider": result.get("provider"), "duration_ms": response["duration_ms"]},
    )
    return response


def _number(value: Any) -> Optional[float]:
    """Finite float or None. json.loads accepts NaN and Infinity literals."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value) if isinstance(value, (int, float)) else float(str(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def _clamp_score(value: float) -> float:
    return max(0.0, min(10.0, value))


def build_image_score(raw: dict, index: int) -> ImageScore:
    """
    Score = rounded mean of the four sub-scores when all are present.
    Missing sub-scores take the overall score.
    """
    subs = {field: _number(raw.get(field)) for field in SUB_SCORE_FIELDS}
    overall = _number(raw.get("score"))

    if all(v is not None for v in subs.values()):
        overall = _round_half_up(sum(subs.values()) / len(subs))
    elif overall is None:
        present = [v for v in subs.values() if v is not None]
        overall = _round_half_up(sum(present) / len(present)) if present else 0.0

    overall = _clamp_score(overall)
    filled = {field: _clamp_score(v if v is not None else overall) for field, v in subs.items()}
    return ImageScore(
        index=index,
        description=str(raw.get("description") or ""),
        score=overall,
        **filled,
    )


def parse_image_analysis(parsed: dict, photo_urls: list[str], analyzed_count: int) -> ImageAnalysisResult:
    """Validate a vision answer against the photos that were actually sent."""
    raw_images = parsed.get("images")
    if not isinstance(raw_images, list):
        raise AIParseError("Invalid JSON: missing or invalid images field")

    images = []
    for position, raw in enumerate(raw_images[:analyzed_count]):
        if not isinstance(raw, dict):
            continue
        index = _number(raw.get("index"))
        index = int(index) if index is not None and 0 <= index < analyzed_count else position
        images.append(build_image_score(raw, index))

    best = _number(parsed.get("best_image_index"))
    if best is None:
        best = max(images, key=lambda img: img.score).index if images else 0
    best_index = max(0, min(int(best), analyzed_count - 1))

    return ImageAnalysisResult(
        best_hero_index=best_index,
        best_hero_url=photo_urls[best_index],
        reasoning=str(parsed.get("reasoning") or ""),
        images=images,
        analyzed_count=analyzed_count,
        total_images=len(photo_urls),
    )


async def rank_hero_image(photo_urls: list[str]) -> ImageAnalysisResult:
    """Call 3. Sends at most MAX_VISION_IMAGES photos."""
    from listing_ingest.services.ai import generate_response

    if not photo_urls:
        raise AICallError("Call 3 needs at least one photo")

    analyzed = photo_urls[: vision_prompts.MAX_VISION_IMAGES]
    result = await generate_response(
        system_prompt=vision_prompts.SYSTEM_MESSAGE,
        user_message=vision_prompts.build_vision_prompt(len(analyzed)),
        temperature=CALL3_TEMPERATURE,
        response_format="json",
        image_urls=analyzed,
    )
    _raise_for_error(result, "Call 3")

    analysis = parse_image_analysis(parse_json_object(result["content"]), photo_urls, len(analyzed))
    analysis.call_duration_ms = result.get("latency_ms", 0)
    analysis.usage = _usage(result)

    logger.info(
        "Call 3 picked hero %d of %d analyzed",
        analysis.best_hero_index, analysis.analyzed_count,
        extra={"call": "call3", "provider": result.get("provider"), "duration_ms": analysis.call_duration_ms},
    )
    return analysis
