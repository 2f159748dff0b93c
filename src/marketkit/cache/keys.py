"""Cache key generation: a pure function of the request's identifying parts."""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from typing import Any

from marketkit.types import RequestInfo

ANONYMOUS = "anonymous"
KEY_PREFIX = "cache:"

_MULTI_SLASH = re.compile(r"/{2,}")


def generate_cache_key(
    method: str,
    path: str,
    query: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
    identity: str | None = None,
) -> str:
    """Generate a cache key from method, path, query, route params and caller.

    Query and route params are encoded with sorted keys, so parameter order
    never changes the key. A missing identity maps to "anonymous". The
    method and normalized path stay readable in the key so route patterns
    can be invalidated by substring.
    """
    components = [
        method.upper(),
        normalize_path(path),
        _encode(query),
        _encode(params),
        identity or ANONYMOUS,
    ]
    combined = "|".join(components)
    digest = hashlib.sha256(combined.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{components[0]}:{components[1]}:{digest}"


def key_for_request(request: RequestInfo, include_identity: bool = True) -> str:
    """Key for a RequestInfo. Identity can be excluded to share entries across callers."""
    return generate_cache_key(
        request.method,
        request.path,
        request.query,
        request.params,
        request.identity if include_identity else None,
    )


def normalize_path(path: str) -> str:
    """Collapse repeated slashes and drop a trailing slash (except for root)."""
    path = _MULTI_SLASH.sub("/", path or "/")
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def _encode(d: Mapping[str, Any] | None) -> str:
    """Deterministic encoding of a mapping via sorted JSON."""
    if not d:
        return ""
    return json.dumps(dict(d), sort_keys=True, default=str)
