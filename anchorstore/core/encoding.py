# anchorstore/core/encoding.py
import base64
import re

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url (no padding, URL-safe)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    """Decode base64url string back to bytes."""
    # Restore padding
    padding = len(s) % 4
    if padding:
        s += "=" * (4 - padding)
    return base64.urlsafe_b64decode(s)


def hex_encode(data: bytes) -> str:
    """Encode bytes as 0x-prefixed lowercase hex."""
    return "0x" + data.hex()


def hex_decode(s: str) -> bytes:
    """Decode 0x-prefixed hex. Raises ValueError on anything else."""
    if not isinstance(s, str) or not _HEX_RE.match(s):
        raise ValueError(f"Not a 0x-prefixed hex string: {s!r}")
    return bytes.fromhex(s[2:])
