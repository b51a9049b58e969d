"""
Mock HTTP endpoints (listing feed and image hosts) and engine fixtures.
"""

import io
import json
from collections import Counter
from typing import Any, Dict, List, Optional

import httpx
import pytest
from PIL import Image

from property_sync_service.config import Settings
from property_sync_service.services.reconciliation import ReconciliationEngine

SOURCE_API_HOST = "listings.test"
SOURCE_API_URL = f"http://{SOURCE_API_HOST}/api/inmueble/list"


def make_jpeg_bytes(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


class MockImageHost:
    """Serves generated JPEGs for registered URLs and counts every request."""

    def __init__(self):
        self.images: Dict[str, bytes] = {}
        self.failing: set = set()
        self.requests: Counter = Counter()

    def add(self, url: str, width: int = 64, height: int = 48, color=(200, 30, 30)) -> str:
        self.images[url] = make_jpeg_bytes(width, height, color)
        return url

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests[url] += 1
        if url in self.failing:
            return httpx.Response(500, text="boom")
        if url not in self.images:
            return httpx.Response(404, text="not found")
        return httpx.Response(
            200, content=self.images[url], headers={"Content-Type": "image/jpeg"}
        )


class MockSourceApi:
    """The listing feed; records the method and JSON body of each request."""

    def __init__(self):
        self.payload: Any = []
        self.status_code = 200
        self.requests: List[Dict[str, Any]] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        body: Optional[Any] = json.loads(request.content) if request.content else None
        self.requests.append({"method": request.method, "json": body})
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "failure"})
        return httpx.Response(200, json=self.payload)


@pytest.fixture
def image_host() -> MockImageHost:
    return MockImageHost()


@pytest.fixture
def source_api() -> MockSourceApi:
    return MockSourceApi()


@pytest.fixture
async def http_client(image_host, source_api):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == SOURCE_API_HOST:
            return source_api.handle(request)
        return image_host.handle(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client


@pytest.fixture
def images_root(tmp_path):
    return tmp_path / "images"


@pytest.fixture
def test_settings(images_root) -> Settings:
    # Passed by alias so values from .env.test cannot shadow them
    return Settings(
        PROPERTY_SYNC_SERVICE_ENVIRONMENT="testing",
        PROPERTY_SYNC_SERVICE_SOURCE_API_URL=SOURCE_API_URL,
        PROPERTY_SYNC_SERVICE_IMAGES_FOLDER=str(images_root),
        PROPERTY_SYNC_SERVICE_IMAGE_MAX_WIDTH=32,
        PROPERTY_SYNC_SERVICE_BATCH_SIZE=3,
    )


@pytest.fixture
def reconciliation_engine(session_factory, http_client, test_settings) -> ReconciliationEngine:
    return ReconciliationEngine(session_factory, http_client, test_settings)
