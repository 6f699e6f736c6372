"""
AI normalization - turns scraped content into the final listing document.

Stages, each persisted as soon as it finishes:
    call 1 (base config) -> image pass 1 -> calls 2 + 3 in parallel
    -> call 4 (hero upscale) -> image pass 2 -> completed

Call 1 failure is fatal: the record goes to "error" and the exception
propagates. Calls 2, 3 and 4 fail independently and keep the values that
existed before they ran.
"""
import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from listing_ingest.schemas.pipeline import ImageAnalysisResult
from listing_ingest.services.image_pipeline import rehost_config_images
from listing_ingest.services.listing_ai import (
    extract_listing_config,
    generate_title_and_highlights,
    rank_hero_image,
)
from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.services.scraper.text import format_structured_json_to_text
from listing_ingest.services.upscale import upscale_hero_if_needed
from listing_ingest.utils.url_safety import TEMP_PREVIEW_PREFIX

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def image_base_path(preview_id: str) -> str:
    return f"{TEMP_PREVIEW_PREFIX}/{preview_id}"


def photo_urls_from_config(config: dict) -> list[str]:
    urls = []
    for photo in config.get("photos") or []:
        url = photo.get("url") if isinstance(photo, dict) else None
        if isinstance(url, str) and url:
            urls.append(url)
    return urls


def _feature_list(features_amenities: Any) -> list[str]:
    if not isinstance(features_amenities, dict):
        return []
    fa = features_amenities
    interior = fa.get("interior") or {}
    outdoor = fa.get("outdoor") or {}
    parking = fa.get("parking") or {}
    building = fa.get("building") or {}
    energy = fa.get("energy") or {}

    features = []
    if fa.get("pool") or outdoor.get("pool"):
        features.append("Pool")
    if outdoor.get("balcony_terrace"):
        features.append("Balcony/Terrace")
    if outdoor.get("garden"):
        features.append("Garden")
    features.extend(a for a in outdoor.get("amenities") or [] if isinstance(a, str))
    if interior.get("fireplace"):
        features.append("Fireplace")
    features.extend(k for k in interior.get("kitchen_features") or [] if isinstance(k, str))
    features.extend(a for a in fa.get("appliances") or [] if isinstance(a, str))
    if parking.get("type"):
        features.append(f"Parking: {parking['type']}")
    if building.get("elevator"):
        features.append("Elevator")
    if energy.get("solar"):
        features.append("Solar")
    if energy.get("ev_charger"):
        features.append("EV Charger")
    return list(dict.fromkeys(features))


def _area_line(label: str, area: Any) -> Optional[str]:
    if isinstance(area, dict) and isinstance(area.get("value"), (int, float)) and area["value"] > 0:
        return f"{label}: {area['value']} {area.get('unit') or 'sqft'}"
    return None


def format_property_data_for_title(config: dict) -> str:
    """Readable summary of the call-1 config for call 2."""
    lines = []
    if config.get("language"):
        lines.append(f"Language: {config['language']}")
    if config.get("title"):
        lines.append(f"Current Title: {config['title']}")

    address = config.get("address")
    if isinstance(address, dict):
        parts = [
            address.get(k) for k in
            ("street", "city", "neighborhood", "state", "zipcode", "country", "subdivision")
            if address.get(k)
        ]
        if parts:
            lines.append(f"Address: {', '.join(str(p) for p in parts)}")

    beds, baths = config.get("beds") or 0, config.get("baths") or 0
    if beds or baths:
        specs = []
        if beds:
            specs.append(f"{beds} bed{'s' if beds != 1 else ''}")
        if baths:
            specs.append(f"{baths} bath{'s' if baths != 1 else ''}")
        lines.append(f"Property: {', '.join(specs)} - {config.get('property_type') or 'OTHER'}")

    year_built = config.get("year_built")
    if isinstance(year_built, int) and year_built > 0:
        lines.append(f"Year Built: {year_built}")

    for line in (_area_line("Living Area", config.get("living_area")), _area_line("Lot Size", config.get("lot_size"))):
        if line:
            lines.append(line)

    if config.get("description"):
        lines.extend(["", "Description:", str(config["description"])])

    features = _feature_list(config.get("features_amenities"))
    if features:
        lines.extend(["", "Features & Amenities:"])
        lines.extend(f"- {feature}" for feature in features)

    highlights = config.get("highlights")
    if isinstance(highlights, list) and highlights:
        lines.extend(["", "Current Highlights (for improvement):"])
        for i, h in enumerate(highlights):
            if isinstance(h, dict):
                lines.append(f"{i + 1}. {h.get('title', '')}: {h.get('value', '')}")

    return "\n".join(lines)


def apply_title_result(config: dict, title_result: dict) -> dict:
    """Overwrite title / subtitle / highlights only with non-empty values."""
    merged = dict(config)
    title = (title_result.get("title") or "").strip()
    subtitle = (title_result.get("subtitle") or "").strip()
    highlights = title_result.get("highlights")
    if title:
        merged["title"] = title
    if subtitle:
        merged["subtitle"] = subtitle
    if isinstance(highlights, list) and highlights:
        merged["highlights"] = highlights
    return merged


def apply_upscaled_hero(config: dict, hero_url: str, upscaled_url: str) -> dict:
    merged = copy.deepcopy(config)
    for photo in merged.get("photos") or []:
        if isinstance(photo, dict) and photo.get("url") == hero_url:
            photo["url"] = upscaled_url
            break
    return merged


async def _upscale_hero(analysis: ImageAnalysisResult, base_path: str) -> Optional[str]:
    try:
        upscaled = await upscale_hero_if_needed(analysis.best_hero_url, base_path)
    except Exception as e:
        logger.warning("Call 4 failed, keeping original hero: %s", str(e), extra={"call": "call4"})
        return None
    return upscaled if upscaled != analysis.best_hero_url else None


async def generate_config_from_data(
    store: PreviewStore,
    preview_id: str,
    data: Any,
    is_structured: bool,
) -> dict:
    """
    Run the AI pipeline for one preview and persist every stage.

    Returns the final unified document (with _metadata).

    Raises:
        Whatever call 1 or the first persistence step raises; the record is
        marked "error" first.
    """
    log_extra = {"job_id": preview_id}
    base_path = image_base_path(preview_id)

    try:
        await store.update(preview_id, status="pending")

        listing_text = format_structured_json_to_text(data) if is_structured else data

        # Call 1
        call1_started = _now_iso()
        config, call1 = await extract_listing_config(listing_text)
        call1_completed = _now_iso()
        metadata = {
            "call1_started_at": call1_started,
            "call1_completed_at": call1_completed,
            "call1_duration_ms": call1["duration_ms"],
            "call1_usage": call1["usage"],
        }

        config = await rehost_config_images(config, base_path)
        await store.update(
            preview_id,
            generated_config={**config, "_metadata": dict(metadata)},
            unified_json=config,
        )
        logger.info("Call 1 completed for %s", preview_id, extra=log_extra)
    except Exception as e:
        logger.error("Failed to generate config for %s: %s", preview_id, str(e), extra=log_extra)
        await store.update(preview_id, status="error", error_message=str(e) or "Failed to generate config")
        raise

    # Calls 2 + 3
    parallel_started = _now_iso()
    metadata["call2_started_at"] = parallel_started
    metadata["call3_started_at"] = parallel_started
    await store.update(preview_id, unified_json={**config, "_metadata": dict(metadata)})

    photo_urls = photo_urls_from_config(config)
    property_text = format_property_data_for_title(config)

    async def no_photos() -> None:
        return None

    title_result, vision_result = await asyncio.gather(
        generate_title_and_highlights(property_text, config.get("language") or ""),
        rank_hero_image(photo_urls) if photo_urls else no_photos(),
        return_exceptions=True,
    )
    parallel_completed = _now_iso()
    metadata["call2_completed_at"] = parallel_completed
    metadata["call3_completed_at"] = parallel_completed

    final_config = dict(config)
    if isinstance(title_result, BaseException):
        logger.warning("Call 2 failed, keeping call 1 values: %s", str(title_result), extra={**log_extra, "call": "call2"})
        metadata["call2_error"] = str(title_result) or type(title_result).__name__
        metadata["call2_duration_ms"] = 0
    else:
        final_config = apply_title_result(final_config, title_result)
        metadata["call2_duration_ms"] = title_result.get("duration_ms", 0)
        metadata["call2_usage"] = title_result.get("usage")

    analysis: Optional[ImageAnalysisResult] = None
    if isinstance(vision_result, BaseException):
        logger.warning("Call 3 failed: %s", str(vision_result), extra={**log_extra, "call": "call3"})
        metadata["call3_error"] = str(vision_result) or type(vision_result).__name__
        metadata["call3_duration_ms"] = 0
    elif vision_result is None:
        logger.info("Call 3 skipped, no photos in config", extra=log_extra)
        metadata["call3_duration_ms"] = 0
    else:
        analysis = vision_result
        metadata["call3_duration_ms"] = analysis.call_duration_ms
        metadata["call3_usage"] = analysis.usage

    # Call 4
    if analysis is not None and analysis.best_hero_url:
        upscaled = await _upscale_hero(analysis, base_path)
        if upscaled:
            final_config = apply_upscaled_hero(final_config, analysis.best_hero_url, upscaled)
            analysis.best_hero_url = upscaled

    final_config = await rehost_config_images(final_config, base_path)

    unified = {**final_config, "_metadata": metadata}
    update = {"unified_json": unified, "status": "completed"}
    if analysis is not None:
        update["image_analysis"] = analysis.model_dump()
    await store.update(preview_id, **update)

    logger.info("Config generated for %s", preview_id, extra=log_extra)
    return unified
