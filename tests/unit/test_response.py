"""
Unit tests for the response model and writer.
"""

import json
from datetime import datetime, timezone

import pytest

from catfur.http.headers import Headers
from catfur.http.response import (
    BytesBody,
    HTTPResponse,
    StreamBody,
    TextBody,
    bad_request,
    format_http_date,
    internal_error,
    not_found,
    ok,
)
from catfur.http.status_codes import HTTPStatus, reason_phrase

from conftest import FakeSocket, decode_chunked, split_response


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=404).status_line == "HTTP/1.1 404 Not Found"

    def test_unknown_status_uses_class_phrase(self):
        assert HTTPResponse(status=499).status_line == "HTTP/1.1 499 Client Error"

    def test_text(self):
        response = HTTPResponse.text("héllo")

        assert isinstance(response.body, TextBody)
        assert response.body_bytes == "héllo".encode("utf-8")
        assert response.headers["content-type"] == "text/plain; charset=utf-8"

    def test_html(self):
        response = HTTPResponse.html("<p>hi</p>", status=HTTPStatus.CREATED)

        assert response.status == 201
        assert response.headers["Content-Type"].startswith("text/html")

    def test_json(self):
        response = HTTPResponse.json({"lives": 9})

        assert json.loads(response.body_bytes) == {"lives": 9}
        assert response.headers["Content-Type"].startswith("application/json")

    def test_binary(self):
        response = HTTPResponse.binary(b"\x89PNG", "image/png")

        assert isinstance(response.body, BytesBody)
        assert response.body_bytes == b"\x89PNG"
        assert response.headers["Content-Type"] == "image/png"

    def test_error_defaults_to_phrase(self):
        response = HTTPResponse.error(HTTPStatus.SERVICE_UNAVAILABLE)

        assert response.status == 503
        assert json.loads(response.body_bytes) == {"error": "Service Unavailable"}

    def test_set_header_chains_and_is_case_insensitive(self):
        response = HTTPResponse.text("x").set_header("X-Cat", "tabby").with_status(202)

        assert response.headers["x-cat"] == "tabby"
        assert response.status == 202

    def test_header_casing_is_preserved_on_the_wire(self):
        response = HTTPResponse.text("x").set_header("X-Request-ID", "abc")

        assert b"X-Request-ID: abc\r\n" in response.to_bytes()

    def test_plain_dict_headers_are_wrapped(self):
        response = HTTPResponse(headers={"X-A": "1"})

        assert isinstance(response.headers, Headers)
        assert response.headers["x-a"] == "1"


class TestFinalize:
    """finalize() fills in only what is missing."""

    def test_content_length_for_text(self):
        response = HTTPResponse.text("hello").finalize()

        assert response.headers["Content-Length"] == "5"
        assert "Date" in response.headers
        assert response.headers["Server"] == "catfur/0.1"

    def test_content_length_counts_utf8_bytes(self):
        response = HTTPResponse.text("ü").finalize()

        assert response.headers["Content-Length"] == "2"

    def test_explicit_content_length_is_kept(self):
        response = HTTPResponse.text("hello").set_header("Content-Length", "99").finalize()

        assert response.headers["Content-Length"] == "99"

    def test_idempotent(self):
        response = HTTPResponse.text("hello").finalize(server_name="first")
        before = dict(response.headers.items())

        response.finalize(server_name="second")

        assert dict(response.headers.items()) == before
        assert response.headers["Server"] == "first"

    def test_no_body(self):
        response = HTTPResponse(status=HTTPStatus.OK).finalize()

        assert response.headers["Content-Length"] == "0"

    @pytest.mark.parametrize("status", [204, 304])
    def test_bodyless_status_has_no_content_length(self, status: int):
        response = HTTPResponse.empty(status).finalize()

        assert "Content-Length" not in response.headers

    def test_stream_is_chunked_without_length(self):
        response = HTTPResponse.stream(lambda writer: None)
        response.set_header("Content-Length", "10")

        response.finalize()

        assert response.headers["Transfer-Encoding"] == "chunked"
        assert "Content-Length" not in response.headers

    def test_existing_date_and_server_are_kept(self):
        response = HTTPResponse.text("x")
        response.set_header("Date", "yesterday").set_header("Server", "mine")

        response.finalize()

        assert response.headers["Date"] == "yesterday"
        assert response.headers["Server"] == "mine"


class TestWriteTo:
    """write_to() puts a response on a socket."""

    def test_fixed_body(self, fake_socket: FakeSocket):
        HTTPResponse.text("hello").write_to(fake_socket)

        status, headers, body = split_response(fake_socket.data)
        assert status == 200
        assert headers["content-length"] == "5"
        assert body == b"hello"

    def test_head_request_omits_body(self, fake_socket: FakeSocket):
        HTTPResponse.text("hello").write_to(fake_socket, include_body=False)

        status, headers, body = split_response(fake_socket.data)
        assert headers["content-length"] == "5"
        assert body == b""

    def test_stream_three_chunks_and_terminator(self, fake_socket: FakeSocket):
        def producer(writer):
            writer.write("a")
            writer.write(b"bb")
            writer.write("ccc")

        HTTPResponse.stream(producer).write_to(fake_socket)

        status, headers, body = split_response(fake_socket.data)
        assert headers["transfer-encoding"] == "chunked"
        assert "content-length" not in headers
        assert body == b"1\r\na\r\n2\r\nbb\r\n3\r\nccc\r\n0\r\n\r\n"
        assert decode_chunked(body) == [b"a", b"bb", b"ccc"]

    def test_stream_head_goes_out_before_producer_runs(self, fake_socket: FakeSocket):
        seen = []

        def producer(writer):
            seen.append(fake_socket.data)
            writer.write("x")

        HTTPResponse.stream(producer).write_to(fake_socket)

        assert seen[0].startswith(b"HTTP/1.1 200 OK\r\n")
        assert seen[0].endswith(b"\r\n\r\n")

    def test_empty_producer_still_terminates(self, fake_socket: FakeSocket):
        HTTPResponse.stream(lambda writer: None).write_to(fake_socket)

        assert fake_socket.data.endswith(b"\r\n\r\n0\r\n\r\n")

    def test_disconnect_mid_stream_is_absorbed(self):
        sock = FakeSocket(fail_after=2)
        calls = []

        def producer(writer):
            writer.write("one")
            calls.append("one")
            writer.write("two")
            calls.append("two")

        HTTPResponse.stream(producer).write_to(sock)

        # head and first chunk made it; the second write ended the stream
        assert calls == ["one"]
        assert len(sock.sent) == 2

    def test_producer_error_propagates(self, fake_socket: FakeSocket):
        def producer(writer):
            writer.write("partial")
            raise ValueError("boom")

        with pytest.raises(ValueError):
            HTTPResponse.stream(producer).write_to(fake_socket)

        assert not fake_socket.data.endswith(b"0\r\n\r\n")

    def test_to_bytes_refuses_streams(self):
        with pytest.raises(TypeError):
            HTTPResponse.stream(lambda writer: None).to_bytes()

    def test_to_bytes(self):
        raw = HTTPResponse.text("hi").to_bytes()

        assert raw.startswith(b"HTTP/1.1 200 OK\r\n")
        assert raw.endswith(b"\r\n\r\nhi")


class TestConvenienceFunctions:
    def test_ok_picks_body_kind(self):
        assert ok({"a": 1}).headers["Content-Type"].startswith("application/json")
        assert isinstance(ok(b"raw").body, BytesBody)
        assert isinstance(ok("text").body, TextBody)

    def test_error_helpers(self):
        assert bad_request().status == 400
        assert not_found().status == 404
        assert internal_error().status == 500
        assert json.loads(not_found("no cat").body_bytes) == {"error": "no cat"}

    def test_stream_body_kind(self):
        assert isinstance(HTTPResponse.stream(lambda w: None).body, StreamBody)


class TestHelpers:
    def test_format_http_date(self):
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"

    def test_reason_phrase(self):
        assert reason_phrase(418) == "I'm a teapot"
        assert reason_phrase(599) == "Server Error"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert not HTTPStatus.OK.is_error
