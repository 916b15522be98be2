"""
Canonical hashing for the stage transition chain.

A transition's hash must come out the same in every process and on every
backend, so payloads are serialized as sorted, whitespace-free JSON with
fixed renderings for Decimal, datetime and UUID values.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def normalize_timestamp(value: datetime) -> str:
    """
    ISO form of a timestamp as UTC without offset.

    Backends without timezone support hand back naive datetimes, so aware
    values are converted to UTC and stripped before hashing.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        # 1.50 and 1.5 are the same amount
        return str(value.normalize())
    if isinstance(value, datetime):
        return normalize_timestamp(value)
    if isinstance(value, (date, UUID)):
        return value.isoformat() if isinstance(value, date) else str(value)
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON of payload."""
    return _sha256(canonicalize_json(payload))


def hash_transition(payload: dict, prev_hash: str | None) -> str:
    """
    Chain hash of one stage transition.

    Covers the payload fields plus the previous transition's hash, so editing
    or removing any earlier row changes every hash after it.
    """
    return _sha256(f"{hash_payload(payload)}|{prev_hash or GENESIS}")
