"""
Shared test configuration and fixtures for the Variant Matrix API.
"""

import io
import json
from typing import Callable, List

import httpx
import pytest
from PIL import Image as PILImage
from redis.exceptions import WatchError

from variant_matrix.core.matrix import MatrixOptions, VariantMatrix
from variant_matrix.core.session_store import RedisSessionStore
from variant_matrix.core.storefront_client import StorefrontClient
from variant_matrix.core.upload_client import UploadClient


class FakePipeline:
    """WATCH/MULTI/EXEC over FakeRedis; EXEC fails if a watched key changed."""

    def __init__(self, redis):
        self.redis = redis
        self.watched = {}
        self.queued = []
        self.buffering = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.watched = {}
        self.queued = []
        self.buffering = False

    async def watch(self, *keys):
        for key in keys:
            self.watched[key] = self.redis.versions.get(key, 0)

    async def get(self, key):
        return await self.redis.get(key)

    def multi(self):
        self.buffering = True

    def set(self, key, value, ex=None):
        self.queued.append((key, value, ex))
        return self

    async def execute(self):
        for key, version in self.watched.items():
            if self.redis.versions.get(key, 0) != version:
                raise WatchError(f"Watched variable changed: {key}")
        for key, value, ex in self.queued:
            await self.redis.set(key, value, ex=ex)
        return [True] * len(self.queued)


class FakeRedis:
    """Dict-backed stand-in for the few redis.asyncio calls the app makes."""

    def __init__(self):
        self.data = {}
        self.streams = {}
        self.expiries = {}
        self.versions = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def put(self, key, value):
        """Write from "another client", bumping the key's version."""
        self.data[key] = value
        self.versions[key] = self.versions.get(key, 0) + 1

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.put(key, value)
        self.expiries[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.versions[key] = self.versions.get(key, 0) + 1
                removed += 1
        return removed

    async def xadd(self, key, fields):
        entries = self.streams.setdefault(key, [])
        entries.append(dict(fields))
        return f"{len(entries)}-0"

    async def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    def events(self, key) -> List[dict]:
        return [
            {"event": entry["event"], "data": json.loads(entry["data"])}
            for entry in self.streams.get(key, [])
        ]


class RecordingEmitter:
    """Collects upload events instead of writing them to Redis."""

    def __init__(self):
        self.progress = []
        self.statuses = []

    async def emit_progress(self, row_id, done, total):
        self.progress.append((row_id, done, total, round(done / total * 100)))

    async def emit_status(self, row_id, status, uploaded=0, total=0, error=None):
        self.statuses.append((row_id, status, uploaded))


def make_png(color: str = "red") -> bytes:
    """Tiny valid PNG."""
    buf = io.BytesIO()
    PILImage.new("RGB", (2, 2), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return RedisSessionStore(fake_redis, options=MatrixOptions(), ttl_seconds=3600)


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def color_matrix():
    """Matrix in configure step with Color=[Red, Blue] and no sizes."""
    matrix = VariantMatrix(product_name="Cotton Tee")
    matrix.add_value(0, "Red")
    matrix.add_value(0, "Blue")
    matrix.advance()
    return matrix


class RequestRecorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, responder: Callable[[httpx.Request, int], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request, len(self.requests))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def upload_recorder():
    """Upload endpoint answering /uploads/<n>.png for the n-th call."""
    return RequestRecorder(
        lambda request, n: httpx.Response(200, json={"url": f"https://cdn.test/uploads/{n}.png"})
    )


@pytest.fixture
def storefront_recorder():
    return RequestRecorder(lambda request, n: httpx.Response(201, json={"ok": True}))


@pytest.fixture
def upload_client_factory():
    def factory(recorder: RequestRecorder) -> UploadClient:
        return UploadClient("https://shop.test", transport=recorder.transport)
    return factory


@pytest.fixture
def storefront_client_factory():
    def factory(recorder: RequestRecorder) -> StorefrontClient:
        return StorefrontClient("https://shop.test", transport=recorder.transport)
    return factory
