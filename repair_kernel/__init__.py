"""
Repair Quote Kernel

The workflow that carries a damage/repair case from creation through
technician quoting, internal review, client approval, and closure:
- Closed status enumeration with a single transition table
- Single-use, time-limited capability tokens for external actors
- Markup pricing with exact per-item allocation
- Append-only, hash-chained audit trail
"""

__version__ = "0.1.0"
