"""
Deterministic hashing for the article log chain and config checksums.

Anything hashed goes through ``canonicalize_json`` first: sorted keys,
compact separators, and fixed renderings for enums, UUIDs, dates and
sets.  A value the canonical form cannot represent raises TypeError rather
than hashing something unstable.
"""

import hashlib
import json
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _canonical_value(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    # datetime is a date subclass
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"cannot canonicalize {type(obj).__name__} for hashing")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: Any) -> str:
    """64-char hex digest of the canonical JSON form of ``payload``."""
    return sha256_hex(canonicalize_json(payload))


def hash_article_log(
    article_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash for one article log row.

    The previous row's hash is folded in, so editing or removing any row
    changes every hash after it.  The first row chains to ``GENESIS``.
    """
    return sha256_hex("|".join((str(article_id), action, payload_hash, prev_hash or GENESIS_MARKER)))
