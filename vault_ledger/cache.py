"""On-disk cache for block-pinned on-chain reads."""

import hashlib
import json
import logging
import os
import shutil
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vault_ledger.constants import CACHE_DIR_NAME, CACHE_VERSION

logger = logging.getLogger(__name__)


def get_cache_dir() -> Path:
    """Cache directory under XDG_CACHE_HOME (or ~/.cache), created on demand."""
    base = Path(os.getenv("XDG_CACHE_HOME") or Path.home() / ".cache")
    cache_dir = base / CACHE_DIR_NAME
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def clear_cache() -> None:
    """Remove every cached read."""
    cache_dir = get_cache_dir()
    if any(cache_dir.iterdir()):
        shutil.rmtree(cache_dir)
        print("✅ Cache cleared successfully.", file=sys.stderr)
    else:
        print("ℹ️  Cache is already empty.", file=sys.stderr)


def cache_key(prefix: str, *parts: Any) -> str:
    """Deterministic key from a prefix and its parts, versioned by CACHE_VERSION."""
    raw = ":".join([prefix, CACHE_VERSION, *(str(p) for p in parts)])
    return hashlib.sha256(raw.encode()).hexdigest()


def get_cached(key: str) -> Any | None:
    """Cached value for `key`, or None when missing or unreadable."""
    path = get_cache_dir() / f"{key}.json"
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as ex:
        logger.debug("Ignoring unreadable cache entry %s: %s", path, ex)
        return None


def set_cached(key: str, data: Any) -> None:
    """Store `data` under `key`; a failed write only costs a refetch next time."""
    path = get_cache_dir() / f"{key}.json"
    try:
        path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
    except (OSError, TypeError) as ex:
        logger.debug("Could not write cache entry %s: %s", path, ex)


def cached_int(key: str, fetch: Callable[[], int], *, use_cache: bool) -> int:
    """Return an integer from the cache, or fetch and store it.

    Integers are stored as decimal strings: JSON readers elsewhere may not keep 256-bit precision.
    """
    if use_cache:
        cached = get_cached(key)
        if cached is not None:
            return int(cached)
    value = int(fetch())
    if use_cache:
        set_cached(key, str(value))
    return value
