import os

import pytest

from lumen.exceptions import MalformedRequestError
from lumen.responder import NotFound, Redirect, Responder, ServedFile

from conftest import SOURCE_MTIME, CountingTransform, make_image


@pytest.fixture
def responder(counting_config):
    return Responder(counting_config)


class TestResponder:
    """
    Request handling: redirects, misses and served files.
    """

    def test_serves_current_version(self, responder, counting_config, photo):
        result = responder.handle(f"products/photo.jpg-w600-v{SOURCE_MTIME}.webp")
        assert isinstance(result, ServedFile)
        assert result.media_type == "image/webp"
        assert result.path == counting_config.cache_path / (
            f"products/photo.jpg-w600-v{SOURCE_MTIME}.webp"
        )
        assert result.path.read_bytes() == b"600x400.webp"
        assert result.headers["Content-Length"] == str(len(b"600x400.webp"))
        assert result.headers["Cache-Control"] == "public, max-age=31536000, immutable"
        assert result.headers["Last-Modified"].endswith("GMT")
        assert "X-Lumen-Cache" not in result.headers

    def test_second_request_is_a_hit(self, responder, photo):
        path = f"products/photo.jpg-w600-v{SOURCE_MTIME}.jpg"
        responder.handle(path)
        responder.handle(path)
        assert CountingTransform.calls == [(600, 400, "jpg")]

    def test_stale_version_redirects(self, responder, counting_config, source_root):
        """
        A URL for an older version of the source redirects to the current
        one, without resizing anything.
        """
        make_image(source_root / "products" / "photo.jpg", mtime=200)
        result = responder.handle("products/photo.jpg-w600-v100.webp")
        assert result == Redirect("/img/products/photo.jpg-w600-v200.webp", 301)
        assert CountingTransform.calls == []

    def test_source_change_supersedes_old_file(self, responder, counting_config, photo):
        responder.handle(f"products/photo.jpg-w600-v{SOURCE_MTIME}.webp")
        os.utime(photo, (SOURCE_MTIME + 50, SOURCE_MTIME + 50))

        old = f"products/photo.jpg-w600-v{SOURCE_MTIME}.webp"
        new = f"products/photo.jpg-w600-v{SOURCE_MTIME + 50}.webp"
        assert responder.handle(old) == Redirect("/img/" + new)
        result = responder.handle(new)
        assert isinstance(result, ServedFile)
        assert not (counting_config.cache_path / old).exists()
        assert len(CountingTransform.calls) == 2

    def test_missing_source(self, responder):
        result = responder.handle("products/gone.jpg-w600-v1.webp")
        assert isinstance(result, NotFound)
        assert CountingTransform.calls == []

    def test_malformed(self, responder):
        with pytest.raises(MalformedRequestError):
            responder.handle("products/photo.jpg")

    def test_debug_headers(self, make_config, photo):
        responder = Responder(make_config(transform={"type": "counting"}, debug_headers=True))
        path = f"products/photo.jpg-w600-v{SOURCE_MTIME}.webp"
        first = responder.handle(path)
        second = responder.handle(path)
        assert first.headers["X-Lumen-Cache"] == "write"
        assert second.headers["X-Lumen-Cache"] == "hit"
        assert second.headers["X-Lumen-Source"] == str(photo.resolve())

    def test_app_versioning(self, make_config, photo):
        responder = Responder(
            make_config(transform={"type": "counting"}, versioning="app", app_version="2024.1")
        )
        assert responder.handle("products/photo.jpg-w300-v2024.0.webp") == Redirect(
            "/img/products/photo.jpg-w300-v2024.1.webp"
        )
        assert isinstance(
            responder.handle("products/photo.jpg-w300-v2024.1.webp"), ServedFile
        )
