"""
Tests for the text renderers fed to the extraction model.
"""
from listing_ingest.services.scraper.text import (
    extract_structured_text,
    format_field_name,
    format_structured_json_to_text,
)


class TestExtractStructuredText:
    def test_headings_paragraphs_and_lists(self):
        html = """
        <main>
          <h1>12 Oak Lane</h1>
          <p>Bright family home close to downtown.</p>
          <ul><li>Heated pool</li><li>Two-car garage</li></ul>
          <ol><li>First floor</li><li>Second floor</li></ol>
        </main>
        """
        text = extract_structured_text(html)
        assert "# 12 Oak Lane" in text
        assert "Bright family home close to downtown." in text
        assert "• Heated pool" in text
        assert "2. Second floor" in text

    def test_short_paragraphs_are_dropped(self):
        assert extract_structured_text("<p>Too short</p>") == ""

    def test_scripts_are_skipped(self):
        html = "<div><script>var price = 1;</script><span>Listed by Oak Realty</span></div>"
        text = extract_structured_text(html)
        assert "var price" not in text
        assert "Listed by Oak Realty" in text

    def test_no_triple_newlines(self):
        html = "<h2>One</h2><h2>Two</h2><h2>Three</h2>"
        assert "\n\n\n" not in extract_structured_text(html)

    def test_empty_input(self):
        assert extract_structured_text("") == ""


class TestFormatFieldName:
    def test_camel_case(self):
        assert format_field_name("yearBuilt") == "Year Built"

    def test_snake_case(self):
        assert format_field_name("lot_size") == "Lot Size"


class TestFormatStructuredJson:
    def test_scalars_and_money(self):
        text = format_structured_json_to_text({"price": 750000, "bedrooms": 3, "hasPool": True})
        assert "Price: $750,000" in text
        assert "Bedrooms: 3" in text
        assert "Has Pool: Yes" in text

    def test_skips_request_metadata_and_empty_values(self):
        text = format_structured_json_to_text({"url": "https://x", "requestId": "abc", "city": "", "zip": "78701"})
        assert "Url" not in text
        assert "Request Id" not in text
        assert "City" not in text
        assert "Zip: 78701" in text

    def test_nested_objects_and_arrays(self):
        data = {
            "address": {"streetAddress": "12 Oak Ln", "city": "Austin"},
            "photos": ["https://p/1.jpg", "https://p/2.jpg"],
        }
        text = format_structured_json_to_text(data)
        assert "Address:" in text
        assert "  Street Address: 12 Oak Ln" in text
        assert "Photos: (2 items)" in text
        assert "  - https://p/2.jpg" in text

    def test_multiple_items_are_separated(self):
        text = format_structured_json_to_text([{"city": "Austin"}, {"city": "Dallas"}])
        assert "--- Property 2 ---" in text

    def test_empty(self):
        assert format_structured_json_to_text(None) == ""
        assert format_structured_json_to_text([]) == ""
