"""
Blob storage - S3-compatible bucket (R2, S3, MinIO) behind boto3.
boto3 is blocking, so uploads and deletes run in the default executor.
"""
import asyncio
import logging
from typing import Optional

from listing_ingest.errors import ConfigurationError, StorageError
from listing_ingest.utils.url_safety import sanitize_storage_path

logger = logging.getLogger(__name__)

_s3_client = None

DELETE_BATCH_SIZE = 1000  # delete_objects limit per request


def get_s3_client():
    """Get or create the pooled S3 client."""
    global _s3_client
    if _s3_client is not None:
        return _s3_client

    import boto3
    from botocore.config import Config
    from listing_ingest.config import get_settings
    settings = get_settings()

    if not (settings.storage_access_key_id and settings.storage_secret_access_key):
        raise ConfigurationError("Storage credentials are not configured")

    _s3_client = boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url or None,
        region_name=settings.storage_region or None,
        aws_access_key_id=settings.storage_access_key_id,
        aws_secret_access_key=settings.storage_secret_access_key,
        config=Config(signature_version="s3v4", retries={"max_attempts": 3}),
    )
    return _s3_client


def public_url_for(key: str) -> str:
    from listing_ingest.config import get_settings
    settings = get_settings()
    base = settings.storage_public_url.rstrip("/")
    if not base:
        raise ConfigurationError("STORAGE_PUBLIC_URL is not configured")
    return f"{base}/{key}"


def is_storage_url(url: str) -> bool:
    """True for URLs we already host."""
    from listing_ingest.config import get_settings
    base = get_settings().storage_public_url.rstrip("/")
    return bool(base) and url.startswith(base + "/")


def _upload_sync(key: str, data: bytes, content_type: str) -> None:
    from listing_ingest.config import get_settings
    get_s3_client().put_object(
        Bucket=get_settings().storage_bucket,
        Key=key,
        Body=data,
        ContentType=content_type,
        CacheControl="public, max-age=3600",
    )


async def upload_image(path: str, data: bytes, content_type: str) -> str:
    """
    Upload bytes under a sanitized path and return the durable public URL.

    Raises:
        ValueError: path fails sanitization.
        ConfigurationError: storage is not configured.
    """
    key = sanitize_storage_path(path)
    if key is None:
        raise ValueError(f"Invalid storage path: {path}")

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _upload_sync, key, data, content_type)
    logger.debug("Uploaded %s (%d bytes)", key, len(data))
    return public_url_for(key)


def is_configured() -> bool:
    from listing_ingest.config import get_settings
    settings = get_settings()
    return bool(settings.storage_access_key_id and settings.storage_secret_access_key)


def _delete_prefix_sync(prefix: str) -> int:
    from listing_ingest.config import get_settings
    client = get_s3_client()
    bucket = get_settings().storage_bucket

    deleted = 0
    continuation_token = None
    while True:
        params = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": DELETE_BATCH_SIZE}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        page = client.list_objects_v2(**params)

        objects = [{"Key": item["Key"]} for item in page.get("Contents") or []]
        if objects:
            response = client.delete_objects(Bucket=bucket, Delete={"Objects": objects, "Quiet": True})
            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                raise StorageError(
                    f"Failed to delete {len(errors)} object(s) under {prefix}: "
                    f"{first.get('Code')} {first.get('Key')}"
                )
            deleted += len(objects)

        if not page.get("IsTruncated"):
            return deleted
        continuation_token = page.get("NextContinuationToken")


async def delete_prefix(path: str) -> int:
    """
    Delete every object stored under one preview folder, e.g. "temp-preview/<id>".
    Returns the number of objects removed.

    Raises:
        ValueError: path is not a preview folder.
        StorageError: the bucket reported per-object delete errors.
    """
    folder = sanitize_storage_path(path)
    if folder is None or folder.count("/") != 1:
        raise ValueError(f"Invalid storage folder: {path}")

    loop = asyncio.get_running_loop()
    deleted = await loop.run_in_executor(None, _delete_prefix_sync, folder + "/")
    if deleted:
        logger.info("Deleted %d object(s) under %s", deleted, folder)
    return deleted


def reset_client(client: Optional[object] = None) -> None:
    """Swap the pooled client (tests, credential rotation)."""
    global _s3_client
    _s3_client = client
