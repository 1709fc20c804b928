# anchorstore/crypto/identity.py
from typing import Any, Optional

from anchorstore.core.canon import canonical_json
from anchorstore.core.encoding import b64url_encode, b64url_decode
from anchorstore.core.errors import ValidationError, ConfigurationError
from anchorstore.crypto.hashing import content_hash, hash_matches
from anchorstore.crypto.keys import NodeKeyPair


class IdentityManager:
    """
    Stateless signing / hashing facade used by the builders and the engine.

    Payloads are signed over their canonical JSON bytes; signatures travel as
    base64url strings. The only configuration is the node's own signing secret.
    """

    def __init__(self, node_secret: Optional[str] = None):
        self._node_secret = node_secret

    def create_key_pair(self) -> NodeKeyPair:
        return NodeKeyPair.generate()

    def sign(self, secret: str, payload: Any) -> str:
        signer = NodeKeyPair.from_secret(secret)
        return b64url_encode(signer.sign_bytes(canonical_json(payload)))

    def validate_signature(self, address: str, signature: str, payload: Any) -> None:
        """Raises ValidationError unless signature is a valid signature of payload by address."""
        try:
            verifier = NodeKeyPair.from_address(address)
            signature_bytes = b64url_decode(signature)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Signature can not be checked: {e}") from e

        if not verifier.verify_bytes(signature_bytes, canonical_json(payload)):
            raise ValidationError("Signature is invalid")

    def calculate_hash(self, value: Any) -> str:
        return content_hash(value)

    def check_hash_matches(self, digest: Any, value: Any) -> bool:
        return hash_matches(digest, value)

    def address_from_secret(self, secret: str) -> str:
        return NodeKeyPair.from_secret(secret).address

    def node_private_key(self) -> str:
        if not self._node_secret:
            raise ConfigurationError("Node private key is not configured (ANCHORSTORE_NODE_PRIVATE_KEY)")
        return self._node_secret
