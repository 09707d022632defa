"""Call command -- perform one cached RPC call from the command line.

``rpcache call SERVICE METHOD`` sends a Twirp JSON request through the
caching layer configured in :class:`~rpcache.models.GlobalConfig` and
prints the response payload to stdout. The cache disposition and age are
reported on stderr so that the payload can be piped.

Because the disk and Redis backends outlive the process, repeated
invocations observe each other's entries, which makes this command a
convenient way to watch ``max-age``, ``stale-while-revalidate`` and
``stale-if-error`` behave against a live service. Background refreshes are
allowed to finish before the command exits.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from rpcache.cache import CachingDecorator, RevalidationScheduler, create_store
from rpcache.client import RpcClient
from rpcache.commands import cli_overrides
from rpcache.config import get_cache_dir, resolve_config
from rpcache.exceptions import InvalidUsageError, RpcacheError
from rpcache.models import CACHE_CONTROL_HEADER, GlobalConfig, RpcResponse
from rpcache.output import error, format_response, report_cache, use_format


def call_command(
    ctx: typer.Context,
    service: str = typer.Argument(help="Fully-qualified service name."),
    method: str = typer.Argument(help="RPC method name."),
    data: str = typer.Option(
        "{}", "--data", "-d", help="Request message as JSON."
    ),
    cache_control: Optional[str] = typer.Option(
        None, "--cache-control", "-c", help="Cache-Control directives for this call."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Extra request header as 'Name: value'. Repeatable."
    ),
) -> None:
    """Call SERVICE/METHOD through the response cache.

    Example::

        rpcache call example.hello_world.HelloWorld Hello -d '{"name": "World"}'
        rpcache call example.hello_world.HelloWorld Hello -d '{"name": "World"}' \\
            -c "max-age=2, stale-while-revalidate=2"
    """
    try:
        config = resolve_config(**cli_overrides(ctx))
        use_format(config.output.format)
        message = _parse_message(data)
        headers = _parse_headers(header or [])
        if cache_control is not None:
            headers[CACHE_CONTROL_HEADER] = cache_control
        response = perform_call(config, service, method, message, headers)
    except RpcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    report_cache(response)
    format_response(response.payload)


def perform_call(
    config: GlobalConfig,
    service: str,
    method: str,
    message: Any,
    headers: dict[str, str],
) -> RpcResponse:
    """Build the cache stack from *config*, make one call, and tear it down.

    Raises:
        InvalidUsageError: If no base URL is configured.
        UpstreamError: If the call fails and no stale response may be served.
    """
    if not config.base_url:
        raise InvalidUsageError(
            "No base URL configured. Pass --base-url, set RPCACHE_BASE_URL, "
            "or run 'rpcache config set base_url <url>'."
        )

    if not config.cache.enabled:
        with RpcClient(config.base_url, request_config=config.request) as client:
            return client.call(service, method, message, headers=headers)

    store = create_store(config.cache, get_cache_dir())
    try:
        scheduler = RevalidationScheduler(
            workers=config.cache.workers, max_queue=config.cache.max_queue
        )
        decorator = CachingDecorator(store, scheduler)
        with RpcClient(
            config.base_url, request_config=config.request, decorator=decorator
        ) as client:
            try:
                return client.call(service, method, message, headers=headers)
            finally:
                # Refreshes use the client's connection pool.
                scheduler.shutdown(wait=True)
    finally:
        store.close()


def _parse_message(data: str) -> Any:
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise InvalidUsageError(f"--data is not valid JSON: {exc}") from exc


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, rest = value.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid header {value!r}, expected 'Name: value'")
        headers[name.strip()] = rest.strip()
    return headers
