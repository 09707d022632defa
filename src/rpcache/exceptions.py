"""Exception hierarchy for rpcache.

All exceptions inherit from :class:`RpcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`rpcache.exit_codes`.
The top-level error handler in :func:`rpcache.app.main` catches
``RpcacheError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    RpcacheError (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- UpstreamError        (exit 5)
    |   +-- ConnectionError_ (exit 6)
    +-- CacheStoreError      (exit 8)
    +-- ConfigError          (exit 1)

Only :class:`UpstreamError` is observable by callers of the caching layer.
:class:`CacheStoreError` is raised by store adapters and absorbed by
:class:`~rpcache.cache.decorator.CachingDecorator`: a cache outage degrades
to an uncached call, never to a distinct failure.
"""

from __future__ import annotations

from typing import Optional

from rpcache.exit_codes import (
    EXIT_CACHE_STORE_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_UPSTREAM_ERROR,
)


class RpcacheError(Exception):
    """Base exception for all rpcache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`rpcache.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(RpcacheError):
    """Raised for invalid CLI arguments or malformed request data."""

    exit_code = EXIT_INVALID_USAGE


class UpstreamError(RpcacheError):
    """Raised when the upstream RPC call fails.

    Args:
        message: Error message reported by the service (Twirp ``msg``).
        code: Twirp error code such as ``unavailable`` or ``not_found``.
        status_code: HTTP status of the failed call, when one was received.
    """

    exit_code = EXIT_UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ConnectionError_(UpstreamError):
    """Raised when the request or its response is lost in transport.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str):
        super().__init__(message, code="unavailable")


class CacheStoreError(RpcacheError):
    """Raised by a cache store adapter when its backend fails at the transport level."""

    exit_code = EXIT_CACHE_STORE_ERROR


class ConfigError(RpcacheError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
