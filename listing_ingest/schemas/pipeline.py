"""
Pipeline schemas - scrape results and vision ranking output.
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class ScrapeResult(BaseModel):
    """
    Output of one scrape. Exactly one of `html` / `data` is the primary payload:
    generic providers fill `html` (and usually `markdown`), structured scrapers fill `data`.
    """
    html: Optional[str] = None
    data: Optional[Any] = None
    markdown: Optional[str] = None
    provider: str
    duration_ms: int = 0
    structured_scraper_id: Optional[str] = None
    gallery_images: list[str] = Field(default_factory=list)
    gallery_html: Optional[str] = None
    gallery_markdown: Optional[str] = None
    actual_provider: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return self.data is not None


class ImageScore(BaseModel):
    index: int
    description: str = ""
    score: float = 0
    composition: float = 0
    lighting: float = 0
    wow_factor: float = 0
    quality: float = 0


class ImageAnalysisResult(BaseModel):
    best_hero_index: int
    best_hero_url: str
    reasoning: str = ""
    images: list[ImageScore] = Field(default_factory=list)
    analyzed_count: int
    total_images: int
    call_duration_ms: int = 0
    usage: Optional[dict] = None
