"""
expense_engines.tracer -- Engine invocation tracer emitting EXPENSE_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected keyword inputs), duration_ms and, when the engine
    supplies one, a short outcome label derived from the result.

Architecture position:
    Engines -- infrastructure support for the pure decision layer.
    Does NOT introduce I/O into engines; emits a log record only.
    Uses a stdlib logger under the ``expense_kernel.engines`` namespace so
    it is configured by ``expense_kernel.logging_config`` without
    importing it.

Invariants enforced:
    - Fingerprints are deterministic: dataclasses are canonicalized field
      by field, dict keys are sorted, enums contribute their value.
    - The decorator only reads kwargs and the return value; it never
      mutates either.

Failure modes:
    - Fingerprint fields missing from kwargs are recorded as "null".
    - Exceptions raised by the engine propagate unchanged; a trace record
      with ``outcome="error"`` and the exception code is emitted first.

Usage:
    from expense_engines.tracer import traced_engine

    @traced_engine("workflow.apply_action", "1.0",
                   fingerprint_fields=("expense", "decision"),
                   summarize=lambda outcome: outcome.outcome.value)
    def apply_action(*, expense, decision, ...):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

_logger = logging.getLogger("expense_kernel.engines.tracer")

TRACE_TYPE = "EXPENSE_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        parts = [
            f"{f.name}:{_canonicalize(getattr(value, f.name))}"
            for f in dataclasses.fields(value)
        ]
        return f"{type(value).__name__}(" + ",".join(parts) + ")"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Compute a deterministic SHA-256 fingerprint of selected input fields.

    Returns a 16-character hex prefix.  Missing fields are recorded as
    "null".  Identical inputs always yield the identical fingerprint.
    """
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], str] | None = None,
) -> Callable:
    """Decorator that emits EXPENSE_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "workflow.apply_action").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Keyword argument names to include in
            the input fingerprint hash.
        summarize: Optional callable turning the engine result into a
            short outcome label for the trace record.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace: dict[str, Any] = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields else ""
                ),
            }
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
                if summarize is not None:
                    trace["outcome"] = summarize(result)
                return result
            except Exception as exc:
                trace["outcome"] = "error"
                trace["error_code"] = getattr(exc, "code", type(exc).__name__)
                raise
            finally:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                _logger.info(TRACE_TYPE, extra=trace)

        return wrapper

    return decorator
