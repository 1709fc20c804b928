# anchorstore/crypto/hashing.py
import hashlib
from typing import Any

from anchorstore.core.canon import canonical_json
from anchorstore.core.encoding import hex_encode


def content_hash(value: Any) -> str:
    """0x-prefixed SHA-256 of the RFC 8785 canonical form of value."""
    return hex_encode(hashlib.sha256(canonical_json(value)).digest())


def hash_matches(digest: Any, value: Any) -> bool:
    if not isinstance(digest, str):
        return False
    try:
        return content_hash(value) == digest
    except (TypeError, ValueError):
        # value not representable as canonical JSON
        return False
