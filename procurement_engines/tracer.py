"""
procurement_engines.tracer -- ENGINE_TRACE records for pure engine calls.

``@traced_engine(name, version, fingerprint_fields)`` logs one record per
call with the engine identity, a short fingerprint of the named arguments
and the elapsed time.  Arguments are bound against the function signature,
so a field is fingerprinted whether it was passed by position or keyword.

The decorator only reads arguments and logs; the wrapped engine stays pure.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """
    SHA-256 prefix over the named arguments.

    Missing fields fingerprint the same as an explicit None.  Mappings are
    key-order independent; sequences keep their order.
    """
    selected = {field: arguments.get(field) for field in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            logger.debug(
                "ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                },
            )
            return result

        return wrapper

    return decorator
