"""
ledger_engines.tracer -- invocation tracer for pure engines.

``@traced_engine`` wraps an engine entry point and emits one debug record
per call:

    LEDGER_ENGINE_TRACE     engine returned; carries the input fingerprint,
                            the duration and an optional result summary
    LEDGER_ENGINE_REJECTED  engine raised; carries the error code, the
                            exception propagates unchanged

Fingerprints are computed over keyword arguments only.  Monetary values
are normalized first so ``Decimal("10.00")`` and ``Decimal("10")``
fingerprint alike, and dataclass inputs (cost lines, charges, open
documents) are walked field by field.

Usage:
    @traced_engine(
        "landed_cost", "1.0",
        fingerprint_fields=("lines", "charges"),
        summarize=lambda r: {"landed_total": r.landed_total},
    )
    def allocate_landed_cost(*, lines, charges): ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("ledger_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        return str(value.normalize()) if value.is_finite() else str(value)
    if isinstance(value, Enum):
        return str(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    if isinstance(value, Mapping):
        items = sorted((str(k), v) for k, v in value.items())
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(fingerprint_fields: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """16-hex-char SHA-256 prefix over the selected keyword arguments; absent ones count as null."""
    canonical = "|".join(f"{f}={_canonicalize(kwargs.get(f))}" for f in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], Mapping[str, Any]] | None = None,
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
                ),
                "function": func.__qualname__,
            }
            t0 = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
                trace["error_code"] = getattr(exc, "code", type(exc).__name__)
                _logger.debug("LEDGER_ENGINE_REJECTED", extra=trace)
                raise

            trace["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
            if summarize is not None and result is not None:
                trace.update({k: str(v) for k, v in summarize(result).items()})
            _logger.debug("LEDGER_ENGINE_TRACE", extra=trace)
            return result

        return wrapper

    return decorator
