"""Cache key derivation.

Keys are ``"{service}/{method}/{sha256(body)}"``. The service and method stay
readable for operators inspecting the store; the body is reduced to a
SHA-256 digest so keys have a bounded length and differing requests do not
collide in practice. Nothing process-local feeds into a key, so keys are
stable across restarts and shared between processes.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def cache_key_for(service: str, method: str, body: bytes) -> str:
    """Return the cache key for one RPC invocation.

    Args:
        service: Fully-qualified service name, e.g.
            ``example.hello_world.HelloWorld``.
        method: RPC method name.
        body: Serialised request message.
    """
    digest = hashlib.sha256(body).hexdigest()
    return f"{service}/{method}/{digest}"


def serialize_request(message: Any) -> bytes:
    """Encode a request message as canonical JSON.

    Keys are sorted and separators are compact so that equal messages always
    produce byte-identical bodies, and therefore identical cache keys.
    """
    return json.dumps(
        message, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")
