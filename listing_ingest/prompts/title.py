"""
Prompt for call 2 - lifestyle title, subtitle and 6 highlight cards.
"""
import json

MAX_TITLE_CHARS = 60
HIGHLIGHT_COUNT = 6

ICON_CATEGORIES = {
    "location": {"label": "Location & Area", "icons": ["MapPin", "Compass", "GlobeHemisphereWest", "SignpostTwo", "MapTrifold"]},
    "view": {"label": "Views & Scenery", "icons": ["Mountains", "SunHorizon", "Tree", "Wave", "Binoculars"]},
    "bedroom": {"label": "Bedrooms", "icons": ["Bed", "Door"]},
    "bathroom": {"label": "Bathrooms", "icons": ["Toilet", "Bathtub", "Shower", "Sink"]},
    "kitchen": {"label": "Kitchen", "icons": ["Fridge", "CookingPot", "KnifeFork", "Microwave"]},
    "luxury": {"label": "Luxury & Premium", "icons": ["Crown", "Diamond", "Sparkle", "Asterisk", "SparkleStar"]},
    "pool": {"label": "Pool & Water", "icons": ["SwimmingPool", "WaveSawtooth", "Water", "Droplet"]},
    "parking": {"label": "Parking", "icons": ["CarSimple", "Garage", "ParkingCircle", "Car"]},
    "outdoor": {"label": "Outdoor & Garden", "icons": ["Tree", "Flower", "PottedPlant", "Fence", "Gate"]},
    "security": {"label": "Security & Safety", "icons": ["ShieldCheck", "Lock", "Camera", "Alarm"]},
    "heating_cooling": {"label": "Climate Control", "icons": ["Thermometer", "Fan", "AirVent", "Sun", "Snowflake"]},
    "energy": {"label": "Energy & Utilities", "icons": ["SolarPanel", "Lightning", "Battery", "Windmill"]},
    "price": {"label": "Price & Financial", "icons": ["CurrencyDollar", "CurrencyEur", "CurrencyPound", "Coin", "Receipt"]},
    "size": {"label": "Size & Measurements", "icons": ["Ruler", "Square", "Resize", "ArrowsOut"]},
    "elevator": {"label": "Elevator & Accessibility", "icons": ["Elevator", "Wheelchair", "Accessibility"]},
    "building": {"label": "Building & Structure", "icons": ["House", "Building", "Construction", "CastleTurret", "Skyscraper"]},
    "appliances": {"label": "Appliances & Furniture", "icons": ["Sofa", "Chair", "Table", "Lamp", "Desk"]},
    "storage": {"label": "Storage & Space", "icons": ["Wardrobe", "Bookshelf", "Box", "Folder"]},
    "distance": {"label": "Proximity & Distance", "icons": ["MapPin", "Distance", "NavigationArrow", "Signpost"]},
    "trending": {"label": "Trending & Popular", "icons": ["TrendingUp", "Fire", "Heart", "Star", "Bolt"]},
    "miscellaneous": {"label": "General", "icons": ["Check", "Plus", "Info", "CheckCircle"]},
}

FALLBACK_ICON = "Check"

SYSTEM_MESSAGE = (
    "You write short, emotionally appealing real estate marketing copy. "
    "You only use facts present in the property data. Always respond with valid JSON only."
)


def all_icon_names() -> frozenset[str]:
    return frozenset(icon for category in ICON_CATEGORIES.values() for icon in category["icons"])


def build_title_prompt(property_text: str, language: str = "") -> str:
    language_line = (
        f"- Write everything in the language with ISO code \"{language}\"."
        if language else "- Use the language of the property data."
    )
    return f"""You generate a SINGLE lifestyle-focused title, a subtitle and {HIGHLIGHT_COUNT} marketing highlights for a real estate property.

LANGUAGE:
{language_line}

TITLE:
- Exactly one title, max {MAX_TITLE_CHARS} characters.
- Emotional, aspirational and benefit-driven (views, pool, location, privacy, design, investment).
- Avoid dry spec-only titles like "3 Bedroom Apartment in X" and generic phrases like "Beautiful Home".

SUBTITLE:
- One sentence expanding on the title with a concrete detail from the data.

HIGHLIGHTS:
- Exactly {HIGHLIGHT_COUNT} items.
- Each has: title (2-5 words), value (short concrete benefit), icon (name from ICON CATEGORIES).
- Every highlight must cite a specific detail found in the property data.
- Do NOT repeat the title text in highlights.
- If no icon fits, use "{FALLBACK_ICON}".

ICON CATEGORIES:
{json.dumps(ICON_CATEGORIES, indent=2)}

PROPERTY DATA:
{property_text}

OUTPUT - only this JSON object:
{{
  "title": "final title",
  "subtitle": "final subtitle",
  "highlights": [{{"title": "highlight title", "value": "highlight value", "icon": "IconName"}}]
}}"""
