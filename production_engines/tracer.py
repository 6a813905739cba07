"""
production_engines.tracer -- PRODUCTION_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps an engine method and logs one trace record per
    call: engine name and version, a fingerprint of the selected keyword
    inputs, elapsed time, and whether the engine accepted or rejected the
    request.

Architecture position:
    Engines -- support code for the pure engine layer.  Produces log
    output only; the wrapped engine's inputs and result pass through
    untouched.

Invariants enforced:
    - The same keyword inputs always give the same 16-hex-char fingerprint,
      independent of keyword order.  Enums fingerprint by value.

Failure modes:
    - Exceptions from the engine are re-raised as-is.  The trace records
      ``outcome="rejected"`` and the kernel error ``code`` when there is one.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

_logger = logging.getLogger("production_kernel.engines.tracer")


def _fingerprint_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """
    SHA-256 prefix over the named keyword arguments.

    Postconditions:
        Fields absent from ``kwargs`` hash the same as an explicit None.
    """
    selected = [[name, kwargs.get(name)] for name in fingerprint_fields]
    canonical = json.dumps(selected, sort_keys=True, default=_fingerprint_default)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Log PRODUCTION_ENGINE_TRACE around every call of the decorated engine."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "trace_type": "PRODUCTION_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields
                    else ""
                ),
                "function": func.__qualname__,
                "outcome": "ok",
            }
            started = time.monotonic()
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                trace["outcome"] = "rejected"
                code = getattr(exc, "code", None)
                if code is not None:
                    trace["error_code"] = code
                raise
            finally:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                _logger.info("PRODUCTION_ENGINE_TRACE", extra=trace)

        return wrapper

    return decorator
