"""
Unit tests for the middleware pipeline and the bundled middleware.
"""

import json
import logging

import pytest

from catfur.http.request import HTTPRequest
from catfur.http.response import HTTPResponse
from catfur.middleware import (
    CORSConfig,
    CORSMiddleware,
    FunctionMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewarePipeline,
    function_middleware,
)


def make_request(method: str = "GET", path: str = "/", headers: dict = None) -> HTTPRequest:
    return HTTPRequest(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client_address=("10.0.0.1", 5555),
    )


def recording(name: str, events: list):
    def transform(next_handler):
        def handler(request):
            events.append(f"{name}-enter")
            response = next_handler(request)
            events.append(f"{name}-exit")
            return response
        return handler
    transform.__name__ = name
    return transform


class TestPipeline:
    """Tests for MiddlewarePipeline ordering and freezing."""

    def test_first_registered_is_outermost(self):
        events = []

        def handler(request):
            events.append("H")
            return HTTPResponse.text("ok")

        pipeline = MiddlewarePipeline().use(recording("A", events), recording("B", events))
        response = pipeline.wrap(handler)(make_request())

        assert response.status == 200
        assert events == ["A-enter", "B-enter", "H", "B-exit", "A-exit"]

    def test_empty_pipeline_returns_handler(self):
        def handler(request):
            return HTTPResponse.text("ok")

        assert MiddlewarePipeline().wrap(handler) is handler

    def test_short_circuit_skips_inner(self):
        events = []

        @function_middleware
        def deny(request, next):
            events.append("deny")
            return HTTPResponse.error(403)

        def handler(request):
            events.append("H")
            return HTTPResponse.text("ok")

        pipeline = MiddlewarePipeline().use(recording("A", events), deny, recording("B", events))
        response = pipeline.wrap(handler)(make_request())

        assert response.status == 403
        assert events == ["A-enter", "deny", "A-exit"]

    def test_class_middleware(self):
        class ServedBy(Middleware):
            def __call__(self, request, next):
                return next(request).set_header("X-Served-By", "catfur")

        pipeline = MiddlewarePipeline().use(ServedBy())
        response = pipeline.wrap(lambda r: HTTPResponse.text("ok"))(make_request())

        assert response.headers["X-Served-By"] == "catfur"
        assert pipeline.names() == ["ServedBy"]

    def test_context_flows_inward(self):
        @function_middleware
        def auth(request, next):
            request.context.set("user", "ada")
            return next(request)

        def handler(request):
            return HTTPResponse.text(request.context.get("user"))

        response = MiddlewarePipeline().use(auth).wrap(handler)(make_request())

        assert response.body_bytes == b"ada"

    def test_function_middleware_name(self):
        def no_cache(request, next):
            return next(request)

        assert FunctionMiddleware(no_cache).name == "no_cache"
        assert FunctionMiddleware(no_cache, name="custom").name == "custom"

    def test_add_after_freeze_raises(self):
        pipeline = MiddlewarePipeline()
        pipeline.freeze()

        with pytest.raises(RuntimeError):
            pipeline.add(recording("late", []))

        assert pipeline.frozen
        assert len(pipeline) == 0

    def test_non_callable_rejected(self):
        with pytest.raises(TypeError):
            MiddlewarePipeline().add("nope")

    def test_wrap_is_per_call(self):
        """Each wrap composes a fresh chain around the given handler."""
        pipeline = MiddlewarePipeline().use(recording("A", []))

        first = pipeline.wrap(lambda r: HTTPResponse.text("1"))
        second = pipeline.wrap(lambda r: HTTPResponse.text("2"))

        assert first(make_request()).body_bytes == b"1"
        assert second(make_request()).body_bytes == b"2"


class TestLoggingMiddleware:
    """Tests for the access log middleware."""

    def test_request_id_generated_and_echoed(self):
        request = make_request()
        middleware = LoggingMiddleware()

        response = middleware(request, lambda r: HTTPResponse.text("ok"))

        request_id = request.context.get("request_id")
        assert request_id is not None
        assert len(request_id) == 8
        assert response.headers["X-Request-ID"] == request_id

    def test_incoming_request_id_is_reused(self):
        request = make_request(headers={"X-Request-ID": "abc123"})

        response = LoggingMiddleware()(request, lambda r: HTTPResponse.text("ok"))

        assert request.context.get("request_id") == "abc123"
        assert response.headers["X-Request-ID"] == "abc123"

    def test_text_line(self, caplog):
        request = make_request(path="/hello/cat")

        with caplog.at_level(logging.INFO, logger="catfur.access"):
            LoggingMiddleware()(request, lambda r: HTTPResponse.text("purr"))

        line = caplog.records[-1].getMessage()
        assert line.startswith("10.0.0.1 - - [")
        assert '"GET /hello/cat" 200 4 ' in line

    def test_json_line(self, caplog):
        request = make_request(path="/x")

        with caplog.at_level(logging.INFO, logger="catfur.access"):
            LoggingMiddleware(log_format="json")(request, lambda r: HTTPResponse.text("ok"))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["method"] == "GET"
        assert entry["path"] == "/x"
        assert entry["status_code"] == 200
        assert entry["content_length"] == 2

    def test_stream_size_is_dash(self, caplog):
        with caplog.at_level(logging.INFO, logger="catfur.access"):
            LoggingMiddleware()(make_request(), lambda r: HTTPResponse.stream(lambda w: None))

        assert '" 200 - ' in caplog.records[-1].getMessage()

    def test_skip_paths(self, caplog):
        with caplog.at_level(logging.INFO, logger="catfur.access"):
            LoggingMiddleware(skip_paths=["/health"])(
                make_request(path="/health"), lambda r: HTTPResponse.text("ok")
            )

        assert not [r for r in caplog.records if r.name == "catfur.access"]

    def test_handler_error_is_logged_and_reraised(self, caplog):
        def handler(request):
            raise KeyError("boom")

        with caplog.at_level(logging.INFO, logger="catfur.access"):
            with pytest.raises(KeyError):
                LoggingMiddleware()(make_request(), handler)

        assert caplog.records[-1].levelno == logging.ERROR
        assert "KeyError" in caplog.records[-1].getMessage()

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")


class TestCORSMiddleware:
    """Tests for CORS headers and preflight handling."""

    def test_simple_request_gets_origin_header(self):
        request = make_request(headers={"Origin": "https://a.dev"})

        response = CORSMiddleware()(request, lambda r: HTTPResponse.text("ok"))

        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "Vary" not in response.headers

    def test_exposes_content_type_by_default(self):
        request = make_request(headers={"Origin": "https://a.dev"})

        response = CORSMiddleware()(request, lambda r: HTTPResponse.text("ok"))

        assert response.headers["Access-Control-Expose-Headers"] == "Content-Type"

    def test_empty_expose_list_sends_no_header(self):
        middleware = CORSMiddleware(CORSConfig(expose_headers=[]))

        response = middleware(
            make_request(headers={"Origin": "https://a.dev"}),
            lambda r: HTTPResponse.text("ok"),
        )

        assert "Access-Control-Expose-Headers" not in response.headers

    def test_preflight_is_answered_without_handler(self):
        called = []
        request = make_request("OPTIONS", "/api", headers={
            "Origin": "https://a.dev",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        })

        response = CORSMiddleware()(request, lambda r: called.append(r))

        assert called == []
        assert response.status == 204
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert "Content-Type" in response.headers["Access-Control-Allow-Headers"]
        assert response.headers["Access-Control-Max-Age"] == "86400"

    def test_plain_options_reaches_handler(self):
        request = make_request("OPTIONS", "/api", headers={"Origin": "https://a.dev"})

        response = CORSMiddleware()(request, lambda r: HTTPResponse.text("handled"))

        assert response.body_bytes == b"handled"

    def test_specific_origin_list(self):
        middleware = CORSMiddleware(CORSConfig(allow_origins=["https://a.dev"]))

        allowed = middleware(
            make_request(headers={"Origin": "https://a.dev"}),
            lambda r: HTTPResponse.text("ok"),
        )
        denied = middleware(
            make_request(headers={"Origin": "https://evil.dev"}),
            lambda r: HTTPResponse.text("ok"),
        )

        assert allowed.headers["Access-Control-Allow-Origin"] == "https://a.dev"
        assert allowed.headers["Vary"] == "Origin"
        assert "Access-Control-Allow-Origin" not in denied.headers

    def test_credentials_echo_origin(self):
        middleware = CORSMiddleware(CORSConfig(allow_credentials=True, expose_headers=["X-Request-ID"]))

        response = middleware(
            make_request(headers={"Origin": "https://a.dev"}),
            lambda r: HTTPResponse.text("ok"),
        )

        assert response.headers["Access-Control-Allow-Origin"] == "https://a.dev"
        assert response.headers["Access-Control-Allow-Credentials"] == "true"
        assert response.headers["Access-Control-Expose-Headers"] == "X-Request-ID"

    def test_disallowed_preflight_is_bare(self):
        middleware = CORSMiddleware(CORSConfig(allow_origins=["https://a.dev"]))
        request = make_request("OPTIONS", "/", headers={
            "Origin": "https://evil.dev",
            "Access-Control-Request-Method": "GET",
        })

        response = middleware(request, lambda r: HTTPResponse.text("ok"))

        assert response.status == 204
        assert "Access-Control-Allow-Methods" not in response.headers
