"""Tests for the synchronous Twirp client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from rpcache.cache.decorator import CachingDecorator
from rpcache.cache.store import MemoryCacheStore
from rpcache.client.sync_client import RpcClient
from rpcache.exceptions import ConnectionError_, UpstreamError
from rpcache.models import CacheStatus, RequestConfig
from rpcache.output import OutputManager, reset_output, set_output

BASE_URL = "http://localhost:3001/twirp"
SERVICE = "example.hello_world.HelloWorld"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        headers={"content-type": "application/json"},
        json=data,
    )


class _Recorder:
    """Mock transport handler that records requests and greets by name."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = json.loads(request.content).get("name", "")
        return _json_response({"message": f"Hello {name} #{len(self.requests)}"})


class _InlineScheduler:
    """Runs refresh tasks immediately on submit."""

    def submit(self, task) -> bool:
        task.run()
        return True


@pytest.fixture(autouse=True)
def _clean_output():
    """Reset the global output manager between tests."""
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


class TestContextManager:
    def test_enter_creates_client(self) -> None:
        client = RpcClient(BASE_URL)
        assert client._client is None
        with client:
            assert client._client is not None
        assert client._client is None

    def test_call_outside_context_fails(self) -> None:
        client = RpcClient(BASE_URL)
        with pytest.raises(AssertionError):
            client.call(SERVICE, "Hello", {})

    def test_request_config_applied(self) -> None:
        with RpcClient(BASE_URL, request_config=RequestConfig(timeout=7)) as client:
            assert client._client.timeout.read == 7


# ---------------------------------------------------------------------------
# Twirp requests
# ---------------------------------------------------------------------------


class TestRequests:
    def test_posts_to_service_method_path(self) -> None:
        recorder = _Recorder()
        with RpcClient(BASE_URL, transport=httpx.MockTransport(recorder)) as client:
            response = client.call(SERVICE, "Hello", {"name": "World"})

        sent = recorder.requests[0]
        assert sent.method == "POST"
        assert sent.url.path == f"/twirp/{SERVICE}/Hello"
        assert sent.headers["content-type"] == "application/json"
        assert sent.content == b'{"name":"World"}'
        assert response.payload == {"message": "Hello World #1"}

    def test_body_is_canonical(self) -> None:
        recorder = _Recorder()
        with RpcClient(BASE_URL, transport=httpx.MockTransport(recorder)) as client:
            client.call(SERVICE, "Hello", {"name": "World", "lang": "en"})
        assert recorder.requests[0].content == b'{"lang":"en","name":"World"}'

    def test_extra_headers_forwarded(self) -> None:
        recorder = _Recorder()
        with RpcClient(BASE_URL, transport=httpx.MockTransport(recorder)) as client:
            client.call(SERVICE, "Hello", {}, headers={"Cache-Control": "max-age=5", "X-Trace": "abc"})
        sent = recorder.requests[0]
        assert sent.headers["cache-control"] == "max-age=5"
        assert sent.headers["x-trace"] == "abc"

    def test_response_headers_kept(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={}, headers={"X-Served-By": "backend-1"})

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            response = client.call(SERVICE, "Hello", {})
        assert response.headers["x-served-by"] == "backend-1"

    def test_without_decorator_no_cache_tags(self) -> None:
        with RpcClient(BASE_URL, transport=httpx.MockTransport(_Recorder())) as client:
            response = client.call(SERVICE, "Hello", {})
        assert response.cache_status is None
        assert response.age is None

    def test_single_attempt(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _json_response({"code": "unavailable", "msg": "try later"}, 503)

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamError):
                client.call(SERVICE, "Hello", {})
        assert len(calls) == 1


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrors:
    def test_twirp_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _json_response({"code": "not_found", "msg": "no such greeting"}, 404)

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                client.call(SERVICE, "Hello", {})

        exc = exc_info.value
        assert exc.code == "not_found"
        assert exc.status_code == 404
        assert str(exc) == "not_found: no such greeting"

    def test_status_without_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                client.call(SERVICE, "Hello", {})
        assert exc_info.value.code == "unavailable"
        assert str(exc_info.value) == "unavailable (HTTP 503)"

    def test_unmapped_server_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                client.call(SERVICE, "Hello", {})
        assert exc_info.value.code == "internal"
        assert "Bad Gateway" in str(exc_info.value)

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConnectionError_) as exc_info:
                client.call(SERVICE, "Hello", {})
        assert exc_info.value.code == "unavailable"
        assert isinstance(exc_info.value, UpstreamError)

    def test_timeout_is_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConnectionError_):
                client.call(SERVICE, "Hello", {})

    def test_dropped_connection_is_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConnectionError_) as exc_info:
                client.call(SERVICE, "Hello", {})
        assert isinstance(exc_info.value.__cause__, httpx.RemoteProtocolError)

    def test_malformed_success_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="not json")

        with RpcClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                client.call(SERVICE, "Hello", {})
        assert exc_info.value.code == "malformed"


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    def test_calls_routed_through_decorator(self, clock) -> None:
        recorder = _Recorder()
        decorator = CachingDecorator(MemoryCacheStore(clock=clock), _InlineScheduler(), clock=clock)
        with RpcClient(BASE_URL, decorator=decorator, transport=httpx.MockTransport(recorder)) as client:
            first = client.call(SERVICE, "Hello", {"name": "World"}, headers={"Cache-Control": "max-age=2"})
            clock.advance(1)
            second = client.call(SERVICE, "Hello", {"name": "World"}, headers={"Cache-Control": "max-age=2"})

        assert first.cache_status is CacheStatus.MISS
        assert second.cache_status is CacheStatus.HIT
        assert second.age == 1
        assert second.payload == first.payload
        assert len(recorder.requests) == 1

    def test_cache_control_lookup_is_case_insensitive(self, clock) -> None:
        recorder = _Recorder()
        decorator = CachingDecorator(MemoryCacheStore(clock=clock), _InlineScheduler(), clock=clock)
        with RpcClient(BASE_URL, decorator=decorator, transport=httpx.MockTransport(recorder)) as client:
            client.call(SERVICE, "Hello", {}, headers={"cache-control": "max-age=2"})
            clock.advance(3)
            response = client.call(SERVICE, "Hello", {}, headers={"cache-control": "max-age=2"})
        assert response.cache_status is CacheStatus.MISS

    def test_stale_if_error_over_http(self, clock) -> None:
        state = {"fail": False}

        def handler(request: httpx.Request) -> httpx.Response:
            if state["fail"]:
                return _json_response({"code": "internal", "msg": "boom"}, 500)
            return _json_response({"message": "cached"})

        decorator = CachingDecorator(MemoryCacheStore(clock=clock), _InlineScheduler(), clock=clock)
        policy = {"Cache-Control": "max-age=2, stale-if-error=2"}
        with RpcClient(BASE_URL, decorator=decorator, transport=httpx.MockTransport(handler)) as client:
            client.call(SERVICE, "Hello", {}, headers=policy)
            state["fail"] = True
            clock.advance(3)
            stale = client.call(SERVICE, "Hello", {}, headers=policy)
            clock.advance(2)
            with pytest.raises(UpstreamError):
                client.call(SERVICE, "Hello", {}, headers=policy)

        assert stale.payload == {"message": "cached"}
        assert stale.cache_status is CacheStatus.HIT

    def test_stale_while_revalidate_over_http(self, clock) -> None:
        recorder = _Recorder()
        decorator = CachingDecorator(MemoryCacheStore(clock=clock), _InlineScheduler(), clock=clock)
        policy = {"Cache-Control": "max-age=2, stale-while-revalidate=2"}
        with RpcClient(BASE_URL, decorator=decorator, transport=httpx.MockTransport(recorder)) as client:
            client.call(SERVICE, "Hello", {"name": "World"}, headers=policy)
            clock.advance(3)
            stale = client.call(SERVICE, "Hello", {"name": "World"}, headers=policy)
            clock.advance(1)
            refreshed = client.call(SERVICE, "Hello", {"name": "World"}, headers=policy)

        assert stale.payload == {"message": "Hello World #1"}
        assert stale.cache_status is CacheStatus.HIT
        assert refreshed.payload == {"message": "Hello World #2"}
        assert len(recorder.requests) == 2

    def test_dropped_connection_serves_stale_if_error(self, clock) -> None:
        state = {"drop": False}

        def handler(request: httpx.Request) -> httpx.Response:
            if state["drop"]:
                raise httpx.RemoteProtocolError("Server disconnected without sending a response.")
            return _json_response({"message": "cached"})

        decorator = CachingDecorator(MemoryCacheStore(clock=clock), _InlineScheduler(), clock=clock)
        policy = {"Cache-Control": "max-age=2, stale-if-error=10"}
        with RpcClient(BASE_URL, decorator=decorator, transport=httpx.MockTransport(handler)) as client:
            client.call(SERVICE, "Hello", {}, headers=policy)
            state["drop"] = True
            clock.advance(3)
            stale = client.call(SERVICE, "Hello", {}, headers=policy)

        assert stale.payload == {"message": "cached"}
        assert stale.cache_status is CacheStatus.HIT
        assert stale.age == 3
