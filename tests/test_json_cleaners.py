"""
Tests for structured-scraper JSON cleaners.
"""
from listing_ingest.services.scraper.json_cleaners import (
    clean_realtor_json,
    clean_zillow_json,
    get_json_cleaner,
    remove_empty_values,
)


def _zillow_item(**overrides) -> dict:
    item = {
        "address": {"streetAddress": "12 Oak Ln", "city": "Austin"},
        "price": 750000,
        "bedrooms": 3,
        "zpid": 123456,
        "hdpUrl": "/homedetails/123",
        "priceHistory": [{"price": 700000}],
        "schools": [{"name": "Oak Elementary"}],
        "description": "Bright family home.",
        "staticMap": {
            "sources": [
                {"url": "https://maps.example.com/static?center=30.2672%2C-97.7431&zoom=15"},
            ],
        },
        "mixedSources": {
            "jpeg": [
                {"url": "https://photos.zillowstatic.com/a_192.jpg", "width": 192},
                {"url": "https://photos.zillowstatic.com/a_1536.jpg", "width": 1536},
                {"url": "https://photos.zillowstatic.com/a_768.jpg", "width": 768},
            ],
        },
        "resoFacts": {
            "gas": "Natural",
            "heating": ["Central"],
            "rooms": [{"roomType": "Kitchen", "area": "200", "dimensions": "10x20"}],
        },
        "listingAgent": {"name": "Jane", "phone": "555-0100"},
    }
    item.update(overrides)
    return item


class TestRemoveEmptyValues:
    def test_drops_empty_values_recursively(self):
        data = {"a": None, "b": "", "c": [], "d": {}, "e": {"f": None}, "g": [None, "x"], "h": 0}
        assert remove_empty_values(data) == {"g": ["x"], "h": 0}

    def test_empty_list_collapses_to_none(self):
        assert remove_empty_values([None, "", {}]) is None


class TestZillowCleaner:
    def test_removes_noise_fields(self):
        cleaned = clean_zillow_json(_zillow_item())
        for field in ("zpid", "hdpUrl", "priceHistory", "schools"):
            assert field not in cleaned
        assert cleaned["price"] == 750000
        assert cleaned["description"] == "Bright family home."

    def test_nested_noise_fields_removed(self):
        cleaned = clean_zillow_json(_zillow_item())
        assert cleaned["listingAgent"] == {"name": "Jane"}

    def test_static_map_reduced_to_coordinates(self):
        cleaned = clean_zillow_json(_zillow_item())
        assert cleaned["staticMap"] == {"latitude": 30.2672, "longitude": -97.7431}

    def test_mixed_sources_keep_widest(self):
        cleaned = clean_zillow_json(_zillow_item())
        assert cleaned["mixedSources"]["jpeg"] == [
            {"url": "https://photos.zillowstatic.com/a_1536.jpg", "width": 1536},
        ]

    def test_reso_facts_trimmed(self):
        cleaned = clean_zillow_json(_zillow_item())
        facts = cleaned["resoFacts"]
        assert "gas" not in facts
        assert facts["heating"] == ["Central"]
        assert facts["rooms"] == [{"roomType": "Kitchen"}]

    def test_accepts_list_and_wrapper(self):
        as_list = clean_zillow_json([_zillow_item()])
        wrapped = clean_zillow_json({"structuredData": [_zillow_item()]})
        assert "zpid" not in as_list[0]
        assert "zpid" not in wrapped["structuredData"][0]

    def test_does_not_mutate_input(self):
        item = _zillow_item()
        clean_zillow_json(item)
        assert item["resoFacts"]["gas"] == "Natural"


class TestRealtorCleaner:
    def test_removes_request_metadata(self):
        data = [{"url": "https://x", "requestId": "r1", "price": 500000, "tags": ["", "pool"], "agent": {}}]
        assert clean_realtor_json(data) == [{"price": 500000, "tags": ["pool"]}]


class TestRegistry:
    def test_lookup(self):
        assert get_json_cleaner("zillow") is clean_zillow_json
        assert get_json_cleaner("realtor") is clean_realtor_json
        assert get_json_cleaner("unknown") is None
