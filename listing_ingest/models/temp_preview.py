"""
TempPreview model - one row per submitted listing URL.
Holds the raw scrape artifacts and the progressively merged AI output.
Rows expire 24 hours after creation.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from listing_ingest.database import Base

PREVIEW_TTL_HOURS = 24

PREVIEW_STATUSES = ("queued", "scraping", "pending", "completed", "error")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_expiry() -> datetime:
    return _utcnow() + timedelta(hours=PREVIEW_TTL_HOURS)


class TempPreview(Base):
    __tablename__ = "temp_previews"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    source_url: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default="queued", nullable=False
    )  # queued, scraping, pending, completed, error
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # Raw scrape artifacts
    default_raw_html: Mapped[Optional[str]] = mapped_column(Text)
    default_markdown: Mapped[Optional[str]] = mapped_column(Text)
    gallery_raw_html: Mapped[Optional[str]] = mapped_column(Text)
    gallery_markdown: Mapped[Optional[str]] = mapped_column(Text)
    gallery_image_urls: Mapped[Optional[list]] = mapped_column(JSONB)
    scraped_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    source_domain: Mapped[Optional[str]] = mapped_column(String(100))

    # AI output
    generated_config: Mapped[Optional[dict]] = mapped_column(JSONB)
    unified_json: Mapped[Optional[dict]] = mapped_column(JSONB)
    image_analysis: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_default_expiry
    )

    __table_args__ = (
        Index("ix_temp_previews_status", "status"),
        Index("ix_temp_previews_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<TempPreview {self.id} ({self.status})>"
