"""
Content Hash Value Object

Architectural Intent:
- Deterministic digest of arbitrary JSON-compatible values
- Used to give assets a content-addressed identity so that identical
  assets referenced from several places collapse onto one node
"""

import hashlib
import json
from typing import Any


def content_hash(value: Any) -> str:
    """Return the hex SHA-256 digest of the canonical JSON form of ``value``.

    Mapping keys are sorted so that two structurally equal values always
    hash the same, regardless of insertion order.
    """
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
