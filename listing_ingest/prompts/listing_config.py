"""
Prompt for call 1 - turn scraped listing text into a one-pager config.

CONFIG_TEMPLATE is the shape the model fills in. Its key order is also the
order the final document is stored in (see sort_config_to_template_order).
title / subtitle / highlights are left out of the prompt; call 2 owns them.
"""
import json
from typing import Any

PROPERTY_TYPES = (
    "HOUSE", "TOWNHOUSE", "CONDO", "LAND", "MULTI_FAMILY",
    "MOBILE_HOME", "APARTMENT", "FARM_RANCH", "OTHER",
)
PROPERTY_STATUSES = (
    "FOR_SALE", "FOR_RENT", "SOLD", "UNDER_CONTRACT", "PENDING", "OFF_MARKET", "OTHER",
)
MAX_PHOTOS = 20

CONFIG_TEMPLATE = {
    "title": "",
    "subtitle": "",
    "language": "en",
    "currency": "USD",
    "currency_symbol": "$",
    "property_status": "FOR_SALE",
    "photos": [{"url": "", "alt": ""}],
    "address": {
        "street": "",
        "city": "",
        "neighborhood": "",
        "state": "",
        "zipcode": "",
        "country": "",
        "subdivision": "",
    },
    "price_info": {
        "price": 0,
        "unit": "",
        "hoa_fee": 0,
        "property_tax": 0,
        "interest_rate": 0,
    },
    "beds": 0,
    "baths": 0,
    "property_type": "OTHER",
    "year_built": 0,
    "is_new_construction": False,
    "mls_id": "",
    "living_area": {"value": 0, "unit": "sqft"},
    "lot_size": {"value": 0, "unit": "sqft"},
    "highlights": [{"title": "", "value": "", "icon": ""}],
    "description": "",
    "features": [{"label": "", "value": ""}],
    "features_amenities": {
        "interior": {"fireplace": False, "kitchen_features": []},
        "outdoor": {"pool": False, "balcony_terrace": False, "garden": False, "amenities": []},
        "parking": {"type": "", "spaces": 0},
        "building": {"elevator": False, "floors": 0},
        "energy": {"solar": False, "ev_charger": False, "rating": ""},
        "appliances": [],
    },
    "agent": {
        "name": "",
        "agency": "",
        "phone": "",
        "email": "",
        "photo_url": "",
    },
    "mortgage_info": {"down_payment_percent": 0, "loan_term_years": 0},
    "virtual_tour_url": "",
    "floorplan_url": [],
    "completeness_score": 0,
}

CALL2_OWNED_FIELDS = ("title", "subtitle", "highlights")

SYSTEM_MESSAGE = """You are an AI assistant inside a SaaS tool that generates real estate one-pager websites.

Role:
- Analyze LLM-ready markdown of property listings.
- Produce clean, structured JSON configs that can be rendered directly into a one-pager.

Behavior rules:
- Always respond with VALID JSON only, no explanations or extra text.
- Never include markdown, prose, or code fences in your reply.
- Use only fields and structure specified in the user's instructions.
- Do not invent facts that are not clearly supported or implied by the input.
- Ignore navigation menus, similar properties, recommendations, footer content and portal boilerplate.

If there is any ambiguity, prefer conservative, safe defaults rather than guessing."""


def build_config_prompt(listing_text: str) -> str:
    """User message for call 1."""
    template = {k: v for k, v in CONFIG_TEMPLATE.items() if k not in CALL2_OWNED_FIELDS}

    return f"""Analyze real estate listing. Fill JSON config for one-pager.

PRIORITY FIELDS (fill FIRST):
1. language (ISO 2-letter: en/es/de/cs/sk/fr/it) -> ALL TEXT in this language
2. currency (infer from symbol/location: $, €, £, Kč -> USD/EUR/GBP/CZK)
3. price info, number only
4. photos
5. beds, baths, living_area
6. description, exactly as in the listing text
7. property address
8. agent info
9. property_type: choose ONE from: {", ".join(PROPERTY_TYPES)}
10. property_status: choose ONE from: {", ".join(PROPERTY_STATUSES)}

RULES:
- Missing = "" / 0 / []
- NO hallucinations, use ONLY listing data
- Ignore: similar properties, navigation, footers
- floorplan_url: a dedicated floor plan (PDF/SVG/image URL). Look for "Floor plan"/"Plans"/"Grundriss" links in any language.
- interest_rate: in percent
- do not put the currency in "unit"
- country: if the content does not state it, infer it from address and language
- photos: EXHAUSTIVE LIST. Extract EVERY photo URL found in the input, no duplicates, same order, maximum {MAX_PHOTOS}.
  - Select the HIGHEST resolution available; prefer zoom/lightbox URLs over thumbnails.
  - Prefer URLs sharing the base path of the main listing gallery.
- agent.agency: the listing brokerage. Never use the portal name (e.g. "Zillow"); leave empty if unknown.
- completeness_score: percentage (0-100) of relevant fields you could fill.

JSON STRUCTURE:

{json.dumps(template, indent=2, ensure_ascii=False)}

DATA TO PROCESS:

{listing_text}"""


def _sort_value(value: Any, template: Any) -> Any:
    if isinstance(value, dict) and isinstance(template, dict):
        return sort_config_to_template_order(value, template)
    if isinstance(value, list) and isinstance(template, list) and template and isinstance(template[0], dict):
        return [_sort_value(item, template[0]) for item in value]
    return value


def sort_config_to_template_order(config: dict, template: dict = CONFIG_TEMPLATE) -> dict:
    """
    Re-key config so template keys come first, in template order, recursively.
    Keys the template does not know keep their relative order at the end.
    """
    ordered = {}
    for key, sub_template in template.items():
        if key in config:
            ordered[key] = _sort_value(config[key], sub_template)
    for key, value in config.items():
        if key not in ordered:
            ordered[key] = value
    return ordered
