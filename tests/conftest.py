"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import fnmatch
import os
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

# listing_ingest.main builds its app at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from listing_ingest.config import Settings
from listing_ingest.database import Base
from listing_ingest.services.preview_store import PreviewStore
import listing_ingest.models  # noqa: F401  (registers tables on Base.metadata)


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


class FakePipeline:
    """Queues commands and runs them on execute(), like redis-py pipelines."""

    def __init__(self, redis):
        self._redis = redis
        self._calls = []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self
        return record

    async def execute(self):
        results = []
        for name, args, kwargs in self._calls:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._calls = []
        return results


class FakeRedis:
    """
    In-memory stand-in for redis.asyncio with decode_responses=True.
    TTLs run on a manual clock: call advance(seconds) to expire keys.
    """

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.now = 0.0

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _alive(self, key) -> bool:
        expires_at = self.expiry.get(key)
        if expires_at is not None and expires_at <= self.now:
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    # --- lists ---

    async def rpush(self, key, *values):
        self._alive(key)
        items = self.data.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lpush(self, key, *values):
        self._alive(key)
        items = self.data.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def lpop(self, key):
        if not self._alive(key):
            return None
        items = self.data[key]
        value = items.pop(0)
        if not items:
            del self.data[key]
        return value

    async def llen(self, key):
        return len(self.data[key]) if self._alive(key) else 0

    async def lrange(self, key, start, end):
        if not self._alive(key):
            return []
        items = self.data[key]
        stop = len(items) if end == -1 else end + 1
        return list(items[start:stop])

    # --- strings / keys ---

    async def set(self, key, value, ex=None, nx=False):
        if nx and self._alive(key):
            return None
        self.data[key] = value
        self.expiry.pop(key, None)
        if ex:
            self.expiry[key] = self.now + ex
        return True

    async def get(self, key):
        return self.data.get(key) if self._alive(key) else None

    async def incrbyfloat(self, key, amount):
        current = float(self.data.get(key, 0)) if self._alive(key) else 0.0
        self.data[key] = str(current + amount)
        return current + amount

    async def exists(self, *keys):
        return sum(1 for key in keys if self._alive(key))

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def expire(self, key, seconds):
        if not self._alive(key):
            return False
        self.expiry[key] = self.now + seconds
        return True

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    # --- hashes ---

    async def hset(self, key, field, value):
        self._alive(key)
        fields = self.data.setdefault(key, {})
        created = field not in fields
        fields[field] = value
        return int(created)

    async def hget(self, key, field):
        return self.data[key].get(field) if self._alive(key) else None

    async def hgetall(self, key):
        return dict(self.data[key]) if self._alive(key) else {}

    async def hdel(self, key, *fields):
        if not self._alive(key):
            return 0
        removed = sum(1 for field in fields if self.data[key].pop(field, None) is not None)
        if not self.data[key]:
            del self.data[key]
        return removed

    async def hincrby(self, key, field, amount=1):
        self._alive(key)
        fields = self.data.setdefault(key, {})
        value = int(fields.get(field, 0)) + amount
        fields[field] = str(value)
        return value

    # --- misc ---

    async def ping(self):
        return True

    def pipeline(self):
        return FakePipeline(self)


@pytest.fixture(autouse=True)
def settings():
    """Deterministic settings; every module reads them through get_settings()."""
    test_settings = Settings(
        _env_file=None,
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        internal_api_token="test-internal-token",
        firecrawl_api_key="fc-test",
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        storage_public_url="https://cdn.example.com",
        storage_access_key_id="test-key",
        storage_secret_access_key="test-secret",
        replicate_api_token="r8-test",
        max_concurrent_scrapes=2,
    )
    with patch("listing_ingest.config.get_settings", return_value=test_settings):
        yield test_settings


@pytest.fixture(autouse=True)
def fake_redis():
    """Shared in-memory Redis; replaces the connection helper everywhere."""
    redis = FakeRedis()
    with patch(
        "listing_ingest.utils.redis_client.get_redis",
        new_callable=AsyncMock,
        return_value=redis,
    ):
        yield redis


@pytest.fixture
async def session_factory():
    """In-memory SQLite database, one per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return PreviewStore(session_factory)


@pytest.fixture
def ai_result():
    """Factory for generate_response result dicts."""
    def make(content: str = "{}", **overrides) -> dict:
        result = {
            "content": content,
            "provider": "openai",
            "model": "gpt-4o-mini",
            "latency_ms": 500,
            "cost_usd": 0.001,
            "input_tokens": 100,
            "output_tokens": 50,
            "error": None,
            "timed_out": False,
        }
        result.update(overrides)
        return result
    return make


@pytest.fixture
def mock_ai(ai_result):
    """Mock for async generate_response - prevents real AI API calls in tests."""
    with patch("listing_ingest.services.ai.generate_response", new_callable=AsyncMock) as mock:
        mock.return_value = ai_result('{"title": "Test"}')
        yield mock


@pytest.fixture
def sample_config():
    """A call-1 config as the extraction model would return it."""
    return {
        "title": "3 Bed House in Austin",
        "subtitle": "",
        "language": "en",
        "currency": "USD",
        "currency_symbol": "$",
        "property_status": "FOR_SALE",
        "photos": [
            {"url": "https://photos.example.com/listing/1.jpg", "alt": "Front"},
            {"url": "https://photos.example.com/listing/2.jpg", "alt": "Kitchen"},
            {"url": "https://photos.example.com/listing/3.jpg", "alt": "Pool"},
        ],
        "address": {"street": "12 Oak Ln", "city": "Austin", "state": "TX", "zipcode": "78701"},
        "price_info": {"price": 750000},
        "beds": 3,
        "baths": 2,
        "property_type": "HOUSE",
        "year_built": 1998,
        "living_area": {"value": 2100, "unit": "sqft"},
        "highlights": [{"title": "Pool", "value": "Heated", "icon": "SwimmingPool"}],
        "description": "Bright family home close to downtown with a heated pool.",
        "features_amenities": {
            "outdoor": {"pool": True, "garden": True},
            "interior": {"fireplace": True},
            "parking": {"type": "Garage"},
        },
        "floorplan_url": ["https://photos.example.com/listing/floorplan.png"],
    }
