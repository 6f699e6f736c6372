"""
Preview record store - the only place the pipeline touches temp_previews.
Each call runs in its own short session so partial progress is committed
as soon as a stage finishes.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_ingest.models.temp_preview import TempPreview

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "status", "error_message",
    "default_raw_html", "default_markdown",
    "gallery_raw_html", "gallery_markdown", "gallery_image_urls",
    "scraped_data", "source_domain",
    "generated_config", "unified_json", "image_analysis",
})


def _as_uuid(job_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        return None


class PreviewStore:
    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        if session_factory is None:
            from listing_ingest.database import async_session_factory
            session_factory = async_session_factory
        self._session_factory = session_factory

    async def create(self, source_url: str, preview_id: Optional[uuid.UUID] = None) -> TempPreview:
        preview = TempPreview(id=preview_id or uuid.uuid4(), source_url=source_url, status="queued")
        async with self._session_factory() as session:
            session.add(preview)
            await session.commit()
        return preview

    async def get(self, job_id: Union[str, uuid.UUID]) -> Optional[TempPreview]:
        key = _as_uuid(job_id)
        if key is None:
            return None
        async with self._session_factory() as session:
            return await session.get(TempPreview, key)

    async def update(self, job_id: Union[str, uuid.UUID], **fields) -> bool:
        """
        Set the given columns on one record. Returns False when the record
        does not exist.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preview fields: {', '.join(sorted(unknown))}")

        key = _as_uuid(job_id)
        if key is None:
            return False

        async with self._session_factory() as session:
            preview = await session.get(TempPreview, key)
            if preview is None:
                logger.warning("Preview %s not found for update", job_id, extra={"job_id": str(job_id)})
                return False
            for name, value in fields.items():
                setattr(preview, name, value)
            await session.commit()
        return True

    async def expired_ids(self, now: Optional[datetime] = None, limit: int = 100) -> list[uuid.UUID]:
        """Oldest-first ids of records whose expires_at has passed."""
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                select(TempPreview.id)
                .where(TempPreview.expires_at <= now)
                .order_by(TempPreview.expires_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def delete(self, ids: list[uuid.UUID]) -> int:
        if not ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(delete(TempPreview).where(TempPreview.id.in_(ids)))
            await session.commit()
        return result.rowcount or 0
