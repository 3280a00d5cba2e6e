"""
Unit tests for the static file handler.
"""

import pytest

from catfur.handlers import StaticFileHandler
from catfur.http.request import HTTPRequest


@pytest.fixture
def public(tmp_path):
    (tmp_path / "index.html").write_text("<h1>home</h1>")
    (tmp_path / "style.css").write_text("body {}")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("<h1>docs</h1>")
    (tmp_path.parent / "secret.txt").write_text("top secret")
    return tmp_path


def request_for(name: str, headers: dict = None) -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        path=f"/static/{name}",
        headers=headers or {},
        path_params={"file": name},
    )


class TestStaticFileHandler:
    def test_serves_file_with_mime_type(self, public):
        response = StaticFileHandler(public)(request_for("style.css"))

        assert response.status == 200
        assert response.body_bytes == b"body {}"
        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.headers["Cache-Control"] == "public, max-age=3600"
        assert "ETag" in response.headers
        assert response.headers["Last-Modified"].endswith("GMT")

    def test_binary_file(self, public):
        response = StaticFileHandler(public)(request_for("logo.png"))

        assert response.headers["Content-Type"] == "image/png"
        assert response.body_bytes == b"\x89PNG\r\n"

    def test_directory_serves_index(self, public):
        response = StaticFileHandler(public)(request_for("docs"))

        assert response.body_bytes == b"<h1>docs</h1>"

    def test_empty_name_serves_index(self, public):
        response = StaticFileHandler(public)(request_for(""))

        assert response.body_bytes == b"<h1>home</h1>"

    def test_missing_file(self, public):
        response = StaticFileHandler(public)(request_for("nope.txt"))

        assert response.status == 404

    @pytest.mark.parametrize("name", ["..%2Fsecret.txt", "../secret.txt", "docs/../../secret.txt"])
    def test_traversal_is_404(self, public, name):
        response = StaticFileHandler(public)(request_for(name))

        assert response.status == 404
        assert b"top secret" not in response.body_bytes

    def test_etag_match_is_304(self, public):
        handler = StaticFileHandler(public)
        etag = handler(request_for("style.css")).headers["ETag"]

        response = handler(request_for("style.css", {"if-none-match": etag}))

        assert response.status == 304
        assert response.body is None
        assert response.headers["ETag"] == etag

    def test_custom_param_name(self, public):
        handler = StaticFileHandler(public, param="path")
        request = HTTPRequest(method="GET", path="/f/style.css", path_params={"path": "style.css"})

        assert handler(request).status == 200

    def test_missing_root(self, tmp_path):
        with pytest.raises(ValueError):
            StaticFileHandler(tmp_path / "missing")
