"""
Module: procurement_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel domain types, db.types helpers,
    exceptions and logging.  MUST NOT import procurement_kernel services or
    selectors.

Invariants enforced:
    - Engines never read the clock or the database.
    - Decimal-only arithmetic.
    - Identical inputs always produce identical outputs.

Usage:
    from procurement_engines import TotalsEngine, BudgetComparator
"""

from procurement_engines.budget import BudgetComparator
from procurement_engines.totals import TotalsEngine, to_amount, validate_psm_percent
from procurement_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "TotalsEngine",
    "BudgetComparator",
    "to_amount",
    "validate_psm_percent",
    "traced_engine",
    "compute_input_fingerprint",
]
