"""
Tests for blocked-page detection.
"""
from listing_ingest.services.scraper.block_detection import (
    HEAD_SCAN_CHARS,
    KeywordBlockDetector,
    NullBlockDetector,
    default_detector,
)


class TestKeywordBlockDetector:
    def test_detects_captcha_page(self):
        body = "<h1>Please verify you are human</h1> Complete the CAPTCHA to continue."
        assert default_detector.detect(body) in ("verify you are human", "captcha")

    def test_case_and_whitespace_insensitive(self):
        assert default_detector.detect("Press   &\n Hold to confirm") == "press & hold"

    def test_normal_listing_passes(self):
        body = "# 12 Oak Lane\n\n3 beds, 2 baths, 2,100 sqft. Heated pool and large garden."
        assert default_detector.detect(body) is None

    def test_empty_body(self):
        assert default_detector.detect("") is None

    def test_marker_deep_in_long_page_is_ignored(self):
        listing = "Spacious family home with a heated pool. " * 200
        body = listing + " protected by reCAPTCHA"
        assert len(body) > 5000
        assert default_detector.detect(body) is None

    def test_marker_near_start_of_long_page_is_found(self):
        body = "Access denied. " + "x" * 10_000
        assert default_detector.detect(body) == "access denied"

    def test_custom_markers(self):
        detector = KeywordBlockDetector(markers=("Consent Wall",))
        assert detector.detect("This is a consent wall page") == "consent wall"
        assert detector.detect("captcha") is None

    def test_head_scan_window(self):
        body = "a" * (HEAD_SCAN_CHARS + 10) + " datadome" + "b" * 6000
        assert default_detector.detect(body) is None


class TestNullBlockDetector:
    def test_never_blocks(self):
        assert NullBlockDetector().detect("captcha access denied") is None
