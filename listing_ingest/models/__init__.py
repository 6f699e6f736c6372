"""
Database models - import all models here so Alembic can discover them.
"""
from listing_ingest.models.temp_preview import TempPreview

__all__ = [
    "TempPreview",
]
