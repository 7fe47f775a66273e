"""
count_engines.tracer -- COUNT_ENGINE_TRACE for the pure count engines.

Every call to a decorated engine logs one record naming the engine, its
version, how long the call took and a short digest of the inputs that
decide its answer.  Two records with the same engine version and digest
describe the same calculation, so a reconciliation figure seen in a
support ticket can be matched to the call that produced it.

What goes into the digest:
    - Only keyword arguments named in ``fingerprint_fields``; an absent
      one counts as ``null`` (engines called positionally are not hashed).
    - A ``CountSession`` contributes its ``fingerprint_key()``: id, status,
      area statuses and per-product counted totals.  Recording an item or
      closing an area therefore changes the digest.
    - Catalog mappings are hashed with their keys sorted.

The decorator reads its inputs and writes a log record.  It never changes
the engine's result.

Usage:
    @traced_engine("count_report", "1.0", fingerprint_fields=("session", "unit_costs"))
    def build_count_report(session, variance, unit_costs):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

_logger = logging.getLogger("count_kernel.engines.tracer")

_DIGEST_LENGTH = 16


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    key = getattr(value, "fingerprint_key", None)
    if callable(key):
        return _canonicalize(key())
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        pairs = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    # Decimal, UUID, enums, numbers
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Digest of the named keyword arguments, in field order."""
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Wrap a count engine so each call logs COUNT_ENGINE_TRACE.

    Args:
        engine_name: Engine identifier, e.g. ``"reconciliation"``.
        engine_version: Bumped whenever the engine's arithmetic changes.
        fingerprint_fields: Keyword arguments that feed the input digest.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            digest = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields else ""
            )
            started = time.monotonic()
            result = func(*args, **kwargs)
            _logger.info(
                "COUNT_ENGINE_TRACE",
                extra={
                    "trace_type": "COUNT_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": digest,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
