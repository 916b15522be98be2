"""
Procurement Kernel

Business core for health-program commodity procurement requests:
- Draft requests built from forecast lines, with snapshot margin
- Totals recomputed atomically on every item change
- Fixed approval lifecycle with compare-and-swap stage transitions
- Hierarchical facility scope (facility, woreda, zone, region, national)
- Append-only, hash-chained transition audit trail
"""

__version__ = "0.1.0"
