"""
Per-site browser action sequences for the generic scraper.

A combined sequence captures two DOM snapshots in one request: the listing page
after its main actions, then the page after the "view all photos" click.
"""
import random
from typing import Optional
from urllib.parse import urlparse


def _random_delay(low: int, high: int) -> int:
    return random.randint(low, high)


def _hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _matches(hostname: str, domain: str) -> bool:
    return hostname in (domain, f"www.{domain}")


def realtor_main_actions() -> list[dict]:
    """Expand the property details accordion before capturing the page."""
    return [
        {"type": "wait", "milliseconds": 2000},
        {"type": "click", "selector": '[data-accordion-id="property-details"]'},
        {"type": "wait", "milliseconds": 2000},
        {"type": "scrape"},
    ]


def realtor_gallery_actions() -> list[dict]:
    return [
        {"type": "wait", "milliseconds": _random_delay(1500, 2500)},
        {"type": "click", "selector": 'button[aria-label="View all listing photos"]'},
        {"type": "wait", "milliseconds": _random_delay(2500, 3500)},
        {"type": "scrape"},
    ]


def redfin_gallery_actions() -> list[dict]:
    return [
        {"type": "wait", "milliseconds": _random_delay(1500, 2500)},
        {"type": "click", "selector": "div#photoPreviewButton button"},
        {"type": "wait", "milliseconds": _random_delay(2500, 3500)},
        {"type": "scrape"},
    ]


def homes_gallery_actions() -> list[dict]:
    return [
        {"type": "wait", "milliseconds": _random_delay(1500, 2500)},
        {"type": "scroll", "direction": "down"},
        {"type": "wait", "milliseconds": _random_delay(500, 1000)},
        {"type": "click", "selector": ".hero-carousel-item"},
        {"type": "wait", "milliseconds": _random_delay(2500, 3500)},
        {"type": "scroll", "direction": "down"},
        {"type": "wait", "milliseconds": _random_delay(500, 1000)},
        {"type": "scrape"},
    ]


MAIN_ACTIONS = {
    "realtor.com": realtor_main_actions,
}

GALLERY_ACTIONS = {
    "realtor.com": realtor_gallery_actions,
    "redfin.com": redfin_gallery_actions,
    "homes.com": homes_gallery_actions,
}


def _lookup(registry: dict, url: str):
    hostname = _hostname(url)
    for domain, factory in registry.items():
        if _matches(hostname, domain):
            return factory
    return None


def get_main_actions(url: str) -> Optional[list[dict]]:
    factory = _lookup(MAIN_ACTIONS, url)
    return factory() if factory else None


def get_gallery_actions(url: str) -> Optional[list[dict]]:
    factory = _lookup(GALLERY_ACTIONS, url)
    return factory() if factory else None


def get_combined_actions(url: str) -> Optional[list[dict]]:
    """
    Main actions, scrape, gallery click, scrape.
    None when the site has no gallery click.
    """
    gallery = get_gallery_actions(url)
    if not gallery:
        return None

    click = next((a for a in gallery if a["type"] == "click"), None)
    if click is None:
        return None

    main = get_main_actions(url) or []
    combined = [a for a in main if a["type"] != "scrape"]
    combined.append({"type": "scrape"})
    combined.append({"type": "wait", "milliseconds": _random_delay(1500, 2500)})
    combined.append(click)
    combined.append({"type": "wait", "milliseconds": _random_delay(1000, 2000)})
    combined.append({"type": "scrape"})
    return combined
