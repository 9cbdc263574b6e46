"""Tests for image loading."""

from __future__ import annotations

import base64
from pathlib import Path

import httpx

from model_provider.images import load_image
from model_provider.types import ImageSegment


class TestLoadImage:
    def test_local_file(self, tmp_path: Path):
        path = tmp_path / "plage.png"
        path.write_bytes(b"\x89PNG fake")
        assert load_image(str(path)) == base64.b64encode(b"\x89PNG fake").decode()

    def test_url_fetched(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"remote-bytes")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            data = load_image("https://img.test/cat.png", client=client)

        assert data == base64.b64encode(b"remote-bytes").decode()
        assert seen == ["https://img.test/cat.png"]

    def test_segment_from_source(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"jpg")
        assert ImageSegment.from_source(str(path)) == ImageSegment(base64.b64encode(b"jpg").decode())
