"""Read-only selectors for the procurement kernel."""

from procurement_kernel.selectors.base import BaseSelector
from procurement_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "BaseSelector",
    "RequestSelector",
]
