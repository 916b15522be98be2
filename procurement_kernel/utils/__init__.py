"""Utility modules for the procurement kernel."""

from procurement_kernel.utils.hashing import (
    canonicalize_json,
    hash_payload,
    hash_transition,
)

__all__ = [
    "hash_payload",
    "hash_transition",
    "canonicalize_json",
]
