# anchorstore/crypto/keys.py
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from anchorstore.core.encoding import hex_encode, hex_decode

_RAW = serialization.Encoding.Raw


class NodeKeyPair:
    """
    Ed25519 identity of an account or node.
    address = 0x-hex of the raw public key, secret = 0x-hex of the raw private key.
    A verify-only pair (built from an address) has no secret.
    """

    def __init__(self, public_key: Ed25519PublicKey, private_key: Optional[Ed25519PrivateKey] = None):
        self._public_key = public_key
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "NodeKeyPair":
        private_key = Ed25519PrivateKey.generate()
        return cls(private_key.public_key(), private_key)

    @classmethod
    def from_secret(cls, secret: str) -> "NodeKeyPair":
        raw = hex_decode(secret)
        if len(raw) != 32:
            raise ValueError(f"Ed25519 secret must be 32 bytes, got {len(raw)}")
        private_key = Ed25519PrivateKey.from_private_bytes(raw)
        return cls(private_key.public_key(), private_key)

    @classmethod
    def from_address(cls, address: str) -> "NodeKeyPair":
        raw = hex_decode(address)
        if len(raw) != 32:
            raise ValueError(f"Ed25519 address must be 32 bytes, got {len(raw)}")
        return cls(Ed25519PublicKey.from_public_bytes(raw))

    @property
    def address(self) -> str:
        return hex_encode(self._public_key.public_bytes(_RAW, serialization.PublicFormat.Raw))

    @property
    def secret(self) -> str:
        if self._private_key is None:
            raise ValueError("Verify-only key pair has no secret")
        raw = self._private_key.private_bytes(
            _RAW, serialization.PrivateFormat.Raw, serialization.NoEncryption()
        )
        return hex_encode(raw)

    @property
    def can_sign(self) -> bool:
        return self._private_key is not None

    def sign_bytes(self, data: bytes) -> bytes:
        if self._private_key is None:
            raise ValueError("Verify-only key pair cannot sign")
        return self._private_key.sign(data)

    def verify_bytes(self, signature: bytes, data: bytes) -> bool:
        try:
            self._public_key.verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def __repr__(self):
        return f"NodeKeyPair(address={self.address!r}, can_sign={self.can_sign})"
