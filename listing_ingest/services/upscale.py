"""
Hero image upscaling - Real-ESRGAN on Replicate.
Only the hero photo is upscaled, and only when it is narrower than 1920px.
Any failure keeps the original URL.
"""
import asyncio
import io
import logging
import time
from typing import Optional

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

TARGET_WIDTH = 1920
ESRGAN_MODEL = "daanelson/real-esrgan-a100:499940604f95b416c3939423df5c64a5c95cfd32b464d755dacfe2192a2de7ef"
ESRGAN_TIMEOUT_SECONDS = 120
FETCH_TIMEOUT_SECONDS = 30


def calculate_scale_factor(current_width: int) -> Optional[int]:
    """2 or 4 (ESRGAN's supported factors), None when already wide enough."""
    if current_width <= 0 or current_width >= TARGET_WIDTH:
        return None
    ideal_scale = TARGET_WIDTH / current_width
    return 4 if ideal_scale > 2 else 2


async def get_image_width(url: str) -> Optional[int]:
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(FETCH_TIMEOUT_SECONDS)) as client:
            response = await client.get(url)
        if response.status_code != 200:
            logger.warning("Hero download failed: HTTP %d", response.status_code)
            return None
        with Image.open(io.BytesIO(response.content)) as image:
            return image.width
    except (httpx.HTTPError, OSError) as e:
        logger.warning("Could not read hero dimensions: %s", str(e))
        return None


def _output_url(output) -> str:
    if isinstance(output, list) and output:
        output = output[0]
    if isinstance(output, str):
        return output
    url = getattr(output, "url", None)
    if isinstance(url, str):
        return url
    raise ValueError("Unexpected output format from Replicate")


async def upscale_with_esrgan(image_url: str, scale: int, retry_on_failure: bool = True) -> str:
    """Run ESRGAN and return the output URL. Retries once."""
    import replicate
    from listing_ingest.config import get_settings

    token = get_settings().replicate_api_token
    if not token:
        raise ValueError("REPLICATE_API_TOKEN is not configured")

    client = replicate.Client(api_token=token)
    start = time.monotonic()
    try:
        output = await asyncio.wait_for(
            client.async_run(
                ESRGAN_MODEL,
                input={"image": image_url, "scale": scale, "face_enhance": False},
            ),
            timeout=ESRGAN_TIMEOUT_SECONDS,
        )
        url = _output_url(output)
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error("ESRGAN failed after %dms: %s", duration_ms, str(e) or type(e).__name__)
        if retry_on_failure:
            logger.info("Retrying ESRGAN upscaling")
            return await upscale_with_esrgan(image_url, scale, retry_on_failure=False)
        raise

    logger.info(
        "ESRGAN %dx complete (%dms)", scale, int((time.monotonic() - start) * 1000),
        extra={"call": "call4", "provider": "replicate"},
    )
    return url


async def upscale_hero_if_needed(image_url: str, base_path: str) -> str:
    """
    Upscale and re-host the hero when it is narrower than TARGET_WIDTH.
    Returns the new URL, or image_url when nothing was done or anything failed.
    """
    from listing_ingest.config import get_settings
    from listing_ingest.services.image_pipeline import process_images

    if not get_settings().upscale_enabled:
        return image_url

    width = await get_image_width(image_url)
    if width is None:
        return image_url

    scale = calculate_scale_factor(width)
    if scale is None:
        logger.info("Hero is %dpx wide, no upscaling needed", width)
        return image_url

    try:
        upscaled_url = await upscale_with_esrgan(image_url, scale)
    except Exception as e:
        logger.warning("Upscaling failed, keeping original hero: %s", str(e))
        return image_url

    url_map = await process_images([upscaled_url], base_path, concurrency=1)
    new_url = url_map.get(upscaled_url)
    if not new_url:
        logger.warning("Could not re-host upscaled hero, keeping original")
        return image_url

    logger.info("Hero upscaled from %dpx to ~%dpx", width, width * scale)
    return new_url
