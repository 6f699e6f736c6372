"""
Exception taxonomy for the ingestion pipeline.
Stage-fatal errors end a job with status "error"; the rest are caught per stage.
"""
from typing import Optional


class ListingIngestError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(ListingIngestError):
    """A required credential or setting is missing. Never retried."""


class ScrapeError(ListingIngestError):
    """A scraper backend call failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ScrapeTimeoutError(ScrapeError):
    """A scrape exceeded its timeout budget."""


class BlockedContentError(ScrapeError):
    """The response body looks like an anti-bot, consent or rate-limit page."""

    def __init__(self, message: str, provider: Optional[str] = None, marker: str = ""):
        super().__init__(message, provider)
        self.marker = marker


class EmptyContentError(ListingIngestError):
    """Nothing extractable came back from the scrape."""

    def __init__(self, message: str, fields: Optional[dict] = None):
        super().__init__(message)
        self.fields = fields or {}


class AICallError(ListingIngestError):
    """Every configured model backend failed for a call."""


class AITimeoutError(AICallError):
    """A model call exceeded its timeout."""


class AIParseError(ListingIngestError):
    """A model answered, but the answer is not valid JSON or misses required fields."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class StorageError(ListingIngestError):
    """The blob store refused or partially failed a request."""
