"""``Cache-Control`` directive parsing and freshness rules.

The parser is forgiving: the header value is free-form text
supplied by callers, so anything it does not recognise is ignored and any
directive it cannot read falls back to its default. Parsing never raises.

Recognised directives::

    max-age=<seconds>                 (default 60)
    stale-while-revalidate=<seconds>  (default 0)
    stale-if-error=<seconds>          (default 0)
    no-cache
    no-store

The freshness predicates live on :class:`~rpcache.models.CachePolicy`; the
module-level functions below are thin aliases for call sites that prefer a
functional style.
"""

from __future__ import annotations

import re
from typing import Optional

from rpcache.models import CacheEntry, CachePolicy

DEFAULT_MAX_AGE = 60

_MAX_AGE_RE = re.compile(r"max-age=(\d+)", re.IGNORECASE)
_STALE_WHILE_REVALIDATE_RE = re.compile(r"stale-while-revalidate=(\d+)", re.IGNORECASE)
_STALE_IF_ERROR_RE = re.compile(r"stale-if-error=(\d+)", re.IGNORECASE)
_NO_CACHE_RE = re.compile(r"no-cache", re.IGNORECASE)
_NO_STORE_RE = re.compile(r"no-store", re.IGNORECASE)


def parse_cache_control(value: Optional[str]) -> CachePolicy:
    """Parse a ``Cache-Control`` value into a :class:`CachePolicy`.

    Args:
        value: The raw header value, or ``None`` when the caller sent none.

    Returns:
        The derived policy. Missing or malformed directives take their
        defaults, so ``parse_cache_control(None)`` and
        ``parse_cache_control("garbage")`` both return ``CachePolicy()``.

    Example::

        >>> policy = parse_cache_control("max-age=2, stale-while-revalidate=2")
        >>> policy.max_age, policy.stale_while_revalidate, policy.store_ttl
        (2, 2, 4)
    """
    text = value or ""
    return CachePolicy(
        max_age=_seconds(_MAX_AGE_RE, text, DEFAULT_MAX_AGE),
        stale_while_revalidate=_seconds(_STALE_WHILE_REVALIDATE_RE, text, 0),
        stale_if_error=_seconds(_STALE_IF_ERROR_RE, text, 0),
        no_cache=_NO_CACHE_RE.search(text) is not None,
        no_store=_NO_STORE_RE.search(text) is not None,
    )


def _seconds(pattern: re.Pattern[str], text: str, default: int) -> int:
    match = pattern.search(text)
    if match is None:
        return default
    return int(match.group(1))


def effective_store_ttl(policy: CachePolicy) -> int:
    """``max_age`` plus the longer grace period; see :attr:`CachePolicy.store_ttl`."""
    return policy.store_ttl


def is_fresh(entry: Optional[CacheEntry], policy: CachePolicy, now: int) -> bool:
    return policy.is_fresh(entry, now)


def may_serve_stale_while_revalidating(
    entry: Optional[CacheEntry], policy: CachePolicy, now: int
) -> bool:
    return policy.may_serve_stale_while_revalidating(entry, now)


def may_serve_stale_on_error(
    entry: Optional[CacheEntry], policy: CachePolicy, now: int
) -> bool:
    return policy.may_serve_stale_on_error(entry, now)
