"""
SHA-256 helpers for the audit chain and the configuration checksum.

Payloads are rendered to one canonical JSON text before hashing: sorted
keys, compact separators, and Decimals normalized so ``Decimal("5.50")``
and ``Decimal("5.5")`` hash identically.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_HASH = "GENESIS"


class _CanonicalEncoder(json.JSONEncoder):

    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            return str(o.normalize())
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, UUID):
            return str(o)
        return super().default(o)


_encoder = _CanonicalEncoder(sort_keys=True, separators=(",", ":"))


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: Any) -> str:
    return _encoder.encode(data)


def to_json_document(data: dict) -> dict:
    """Plain-JSON copy of ``data`` suitable for a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: Any) -> str:
    return _sha256_hex(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chained hash of one audit event.

    The predecessor's hash (``GENESIS`` for a company's first event) is an
    input, so editing any historical row invalidates every later hash.
    """
    return _sha256_hex(
        "|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS_HASH))
    )
