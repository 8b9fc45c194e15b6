"""
Canonical JSON and SHA-256 helpers for the audit hash chain.

A hash must come out the same before and after a database round trip, so
everything hashed is first reduced to canonical JSON: sorted keys, no
whitespace, Decimals as strings with their scale, timestamps in one UTC
format.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from repair_kernel.db.types import canonical_timestamp

GENESIS = "GENESIS"


def _canonical_default(obj: Any) -> Any:
    # "150.00" stays "150.00"; str() keeps the Decimal's scale.
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, datetime):
        return canonical_timestamp(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Cannot put {type(obj).__name__} in an audit payload")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_default)


def to_json_safe(data: dict) -> dict:
    """Copy of ``data`` holding only JSON types, as stored in the details column."""
    return json.loads(canonicalize_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return sha256_hex(canonicalize_json(payload))


def hash_audit_entry(
    quote_id: str,
    seq: int,
    action: str,
    at: datetime,
    by: str,
    outcome: str,
    details_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Hash of one audit entry, chained to the previous entry of the same quote.

    The first entry of a quote chains to ``GENESIS``.
    """
    return sha256_hex(
        "|".join(
            (
                str(quote_id),
                str(seq),
                action,
                canonical_timestamp(at),
                by,
                outcome,
                details_hash,
                prev_hash or GENESIS,
            )
        )
    )
