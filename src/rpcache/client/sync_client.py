"""Synchronous Twirp JSON client with ``Cache-Control`` caching.

This module provides :class:`RpcClient`, the blocking RPC client used by
rpcache commands and by applications embedding the cache. It wraps
:class:`httpx.Client` and speaks the Twirp JSON protocol:

- **Request** -- ``POST {base_url}/{service}/{method}`` with
  ``Content-Type: application/json`` and the canonical JSON encoding of the
  request message as body.
- **Success** -- HTTP 200 with the JSON response message.
- **Failure** -- any other status with a Twirp error body
  ``{"code": "...", "msg": "..."}``, raised as
  :class:`~rpcache.exceptions.UpstreamError`. Network and timeout errors are
  raised as :class:`~rpcache.exceptions.ConnectionError_`.

When a :class:`~rpcache.cache.decorator.CachingDecorator` is supplied, every
call is routed through it and the caller's ``Cache-Control`` header selects
the caching policy. Each call makes a single attempt; there is no retry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import httpx

from rpcache.cache.keys import serialize_request
from rpcache.exceptions import ConnectionError_, UpstreamError
from rpcache.models import CACHE_CONTROL_HEADER, RequestConfig, RpcRequest, RpcResponse
from rpcache.output import debug

if TYPE_CHECKING:
    from rpcache.cache.decorator import CachingDecorator

# Twirp error codes for statuses returned without a decodable error body.
_STATUS_CODES = {
    400: "invalid_argument",
    401: "unauthenticated",
    403: "permission_denied",
    404: "bad_route",
    408: "deadline_exceeded",
    409: "already_exists",
    412: "failed_precondition",
    429: "resource_exhausted",
    501: "unimplemented",
    503: "unavailable",
}


class RpcClient:
    """Synchronous Twirp JSON client.

    Must be used as a context manager so that the underlying transport is
    properly opened and closed. Background revalidations issued by the
    decorator reuse this client's connection pool, so wait for the
    decorator's scheduler before leaving the ``with`` block if refreshes
    should complete.

    Args:
        base_url: Prefix for every call, e.g. ``http://localhost:3001/twirp``.
        request_config: Transport settings (timeout, SSL verification).
        decorator: Optional caching layer applied to every call.
        transport: Optional custom :mod:`httpx` transport.

    Example::

        with RpcClient("http://localhost:3001/twirp") as client:
            response = client.call("example.hello_world.HelloWorld", "Hello", {"name": "World"})
    """

    def __init__(
        self,
        base_url: str,
        request_config: Optional[RequestConfig] = None,
        decorator: Optional[CachingDecorator] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._request_config = request_config or RequestConfig()
        self._decorator = decorator
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> RpcClient:
        config = self._request_config
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def call(
        self,
        service: str,
        method: str,
        message: Any,
        headers: Optional[dict[str, str]] = None,
    ) -> RpcResponse:
        """Invoke ``service/method`` with *message*.

        Args:
            service: Fully-qualified service name.
            method: RPC method name.
            message: JSON-serialisable request message.
            headers: Extra request headers. ``Cache-Control`` selects the
                caching policy and is also forwarded upstream.

        Returns:
            The :class:`~rpcache.models.RpcResponse`. When a decorator is
            configured it carries ``X-Cache`` and ``Age`` headers.

        Raises:
            UpstreamError: When the service returns an error and no stale
                response may be served instead.
            ConnectionError_: On network or timeout errors under the same
                condition.
        """
        request = RpcRequest(service=service, method=method, body=serialize_request(message))
        request_headers = dict(headers or {})

        def invoke() -> RpcResponse:
            return self._send(request, request_headers)

        if self._decorator is None:
            return invoke()
        cache_control = _find_header(request_headers, CACHE_CONTROL_HEADER)
        return self._decorator.handle(request, cache_control, invoke)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _send(self, request: RpcRequest, headers: dict[str, str]) -> RpcResponse:
        """POST one request and map the outcome to a response or an exception."""
        assert self._client is not None, "Client not initialised -- use as context manager"

        merged_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        merged_headers.update(headers)
        path = f"/{request.service}/{request.method}"

        try:
            response = self._client.post(path, content=request.body, headers=merged_headers)
        except httpx.TransportError as exc:
            raise ConnectionError_(f"Connection failed for {path}: {exc}") from exc

        debug(f"POST {path} -> HTTP {response.status_code}")
        if response.status_code != 200:
            raise _twirp_error(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Malformed response from {path}: {exc}",
                code="malformed",
                status_code=response.status_code,
            ) from exc
        return RpcResponse(payload=payload, headers=dict(response.headers))


def _find_header(headers: dict[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _twirp_error(response: httpx.Response) -> UpstreamError:
    """Build an :class:`UpstreamError` from a non-200 Twirp response."""
    status = response.status_code
    code = _STATUS_CODES.get(status, "internal" if status >= 500 else "unknown")
    msg = ""
    try:
        detail = response.json()
        if isinstance(detail, dict):
            code = detail.get("code") or code
            msg = detail.get("msg") or ""
    except ValueError:
        msg = response.text[:200] if response.text else ""

    full_msg = f"{code}: {msg}" if msg else f"{code} (HTTP {status})"
    return UpstreamError(full_msg, code=code, status_code=status)
