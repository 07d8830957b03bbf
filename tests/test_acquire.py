"""Test source acquisition: fetch limits and RGBA decoding.

URL fetches are exercised against a stubbed requests.get, so no network
access is needed.

Run: pytest tests/test_acquire.py -v
"""
import io
import tempfile
from pathlib import Path

import numpy as np
import pytest
import requests
from PIL import Image

from src.dtf_engine import acquire
from src.dtf_engine.errors import AcquisitionError
from src.utils.validators import AcquisitionParams


def _png_bytes(mode="RGB", size=(6, 4), color=(200, 50, 50)) -> bytes:
    out = io.BytesIO()
    Image.new(mode, size, color).save(out, format="PNG")
    return out.getvalue()


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(self, body=b"", status_code=200, chunk=4):
        self.body = body
        self.status_code = status_code
        self.chunk = chunk
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), self.chunk):
            yield self.body[i:i + self.chunk]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False


@pytest.fixture
def fake_get(monkeypatch):
    """Patch requests.get; set `.response` or `.error` on the returned object."""
    class Stub:
        response = None
        error = None
        calls = []

        def __call__(self, url, **kwargs):
            self.calls.append((url, kwargs))
            if self.error is not None:
                raise self.error
            return self.response

    stub = Stub()
    stub.calls = []
    monkeypatch.setattr(requests, "get", stub)
    return stub


class TestFetchUrl:

    def test_success_passes_limits(self, fake_get):
        body = _png_bytes()
        fake_get.response = FakeResponse(body)
        params = AcquisitionParams(fetch_timeout_s=5.0, user_agent="ua-test")

        raw = acquire.fetch_source("https://cdn.example.com/a.png", params)

        assert raw == body
        url, kwargs = fake_get.calls[0]
        assert url == "https://cdn.example.com/a.png"
        assert kwargs["timeout"] == 5.0
        assert kwargs["headers"]["User-Agent"] == "ua-test"
        assert fake_get.response.closed

    def test_timeout(self, fake_get):
        fake_get.error = requests.Timeout("read timed out")
        with pytest.raises(AcquisitionError, match="Timed out"):
            acquire.fetch_source("http://slow.example.com/a.png")

    def test_connection_error(self, fake_get):
        fake_get.error = requests.ConnectionError("refused")
        with pytest.raises(AcquisitionError, match="Could not fetch"):
            acquire.fetch_source("http://down.example.com/a.png")

    def test_http_error_status(self, fake_get):
        fake_get.response = FakeResponse(b"not found", status_code=404)
        with pytest.raises(AcquisitionError, match="HTTP 404"):
            acquire.fetch_source("https://cdn.example.com/missing.png")

    def test_oversize_stream_aborted(self, fake_get):
        fake_get.response = FakeResponse(b"x" * 100, chunk=10)
        with pytest.raises(AcquisitionError, match="exceeds 50 bytes"):
            acquire.fetch_source("https://cdn.example.com/big.png", AcquisitionParams(max_bytes=50))

    def test_empty_body(self, fake_get):
        fake_get.response = FakeResponse(b"")
        with pytest.raises(AcquisitionError, match="empty"):
            acquire.fetch_source("https://cdn.example.com/empty.png")


class TestFetchLocal:

    def test_bytes_source(self):
        body = _png_bytes()
        assert acquire.fetch_source(bytearray(body)) == body

    def test_path_source(self):
        body = _png_bytes()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "design.png"
            path.write_bytes(body)
            assert acquire.fetch_source(path) == body
            assert acquire.fetch_source(str(path)) == body

    def test_missing_path(self):
        with pytest.raises(AcquisitionError, match="Could not read"):
            acquire.fetch_source("/nonexistent/design.png")

    def test_oversize_bytes(self):
        with pytest.raises(AcquisitionError, match="limit"):
            acquire.fetch_source(b"x" * 20, AcquisitionParams(max_bytes=10))

    def test_unsupported_type(self):
        with pytest.raises(AcquisitionError, match="Unsupported"):
            acquire.fetch_source(42)

    def test_is_url(self):
        assert acquire.is_url("HTTPS://cdn.example.com/a.png")
        assert not acquire.is_url("art/a.png")
        assert not acquire.is_url(b"http://")


class TestDecode:

    def test_rgb_gets_opaque_alpha(self):
        buf, info = acquire.decode_rgba(_png_bytes("RGB", (6, 4), (200, 50, 50)))
        assert buf.size == (6, 4)
        assert buf.pixel(5, 3) == (200, 50, 50, 255)
        assert info.format == "PNG"
        assert info.mode == "RGB"
        assert not info.had_alpha

    def test_rgba_alpha_kept(self):
        buf, info = acquire.decode_rgba(_png_bytes("RGBA", (3, 3), (1, 2, 3, 77)))
        assert buf.pixel(1, 1) == (1, 2, 3, 77)
        assert info.had_alpha

    def test_greyscale_source(self):
        buf, _ = acquire.decode_rgba(_png_bytes("L", (2, 2), 90))
        assert buf.pixel(0, 0) == (90, 90, 90, 255)

    def test_jpeg_source(self):
        out = io.BytesIO()
        Image.new("RGB", (8, 8), (0, 0, 0)).save(out, format="JPEG")
        buf, info = acquire.decode_rgba(out.getvalue())
        assert info.format == "JPEG"
        assert (buf.alpha == 255).all()

    def test_garbage_bytes(self):
        with pytest.raises(AcquisitionError, match="not a recognized image"):
            acquire.decode_rgba(b"<html>403 Forbidden</html>")

    def test_truncated_png(self):
        body = _png_bytes("RGB", (64, 64))
        with pytest.raises(AcquisitionError):
            acquire.decode_rgba(body[:60])

    def test_acquire_end_to_end(self):
        arr = np.zeros((5, 7, 4), dtype=np.uint8)
        arr[..., 3] = 128
        out = io.BytesIO()
        Image.fromarray(arr).save(out, format="PNG")
        buf = acquire.acquire(out.getvalue())
        assert buf.size == (7, 5)
        assert (buf.alpha == 128).all()

    def test_out_of_memory_during_decode(self, monkeypatch):
        def exhausted(*args, **kwargs):
            raise MemoryError()

        monkeypatch.setattr(Image, "open", exhausted)
        with pytest.raises(AcquisitionError, match="Out of memory"):
            acquire.decode_rgba(_png_bytes())
