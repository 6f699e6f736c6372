"""
Submit a listing URL for preview generation and follow it through the queue.

Usage:
    python scripts/enqueue_preview.py https://www.realtor.com/realestateandhomes-detail/...
    python scripts/enqueue_preview.py <url> --base-url http://localhost:8000 --no-wait
    python scripts/enqueue_preview.py <url> --process   # drive the queue manually (dev only)
"""
import argparse
import asyncio
import json
import logging

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "error"}


async def enqueue(client: httpx.AsyncClient, base_url: str, url: str) -> str:
    resp = await client.post(f"{base_url}/api/previews", json={"url": url})
    resp.raise_for_status()
    body = resp.json()
    logger.info("Queued preview %s at position %s", body["preview_id"], body["queue_position"])
    return body["preview_id"]


async def poll_status(
    client: httpx.AsyncClient,
    base_url: str,
    preview_id: str,
    interval: float,
    timeout: float,
    process: bool,
) -> dict:
    """Poll the job status until it reaches a terminal state or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last_status = None

    while loop.time() < deadline:
        if process:
            await client.post(f"{base_url}/api/queue/process-scrape", json={})

        resp = await client.get(f"{base_url}/api/queue/status/{preview_id}")
        resp.raise_for_status()
        status = resp.json()
        if status["status"] != last_status:
            logger.info(
                "Status: %s (position=%s, processing=%s)",
                status["status"], status.get("queue_position"), status.get("processing"),
            )
            last_status = status["status"]
        if status["status"] in TERMINAL_STATUSES:
            return status
        await asyncio.sleep(interval)

    raise TimeoutError(f"Preview {preview_id} did not finish within {timeout:.0f}s")


async def main(args):
    async with httpx.AsyncClient(timeout=args.request_timeout) as client:
        preview_id = await enqueue(client, args.base_url, args.url)
        if args.no_wait:
            return

        status = await poll_status(
            client, args.base_url, preview_id,
            interval=args.interval, timeout=args.timeout, process=args.process,
        )
        if status["status"] == "error":
            logger.error("Preview failed: %s", status.get("error_message"))
            return

        resp = await client.get(f"{args.base_url}/api/previews/{preview_id}")
        resp.raise_for_status()
        preview = resp.json()
        if status.get("error_message"):
            logger.warning("Completed with warning: %s", status["error_message"])
        print(json.dumps(preview.get("unified_json") or preview.get("generated_config"), indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Enqueue a listing URL and wait for its preview")
    parser.add_argument("url", help="Listing page URL")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Service base URL")
    parser.add_argument("--no-wait", action="store_true", help="Return right after enqueueing")
    parser.add_argument("--process", action="store_true", help="Call process-scrape on each poll")
    parser.add_argument("--interval", type=float, default=3.0, help="Seconds between polls")
    parser.add_argument("--timeout", type=float, default=600.0, help="Overall wait in seconds")
    parser.add_argument("--request-timeout", type=float, default=200.0, help="Per-request timeout")
    asyncio.run(main(parser.parse_args()))
