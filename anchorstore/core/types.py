# anchorstore/core/types.py
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class Account:
    """Registered actor. Address is fixed; permissions and access level may be modified."""
    address: str
    permissions: List[str] = field(default_factory=list)
    access_level: int = 0
    registered_by: Optional[str] = None

    def to_dict(self) -> dict:
        """Wire form (camelCase keys)."""
        return {
            "address": self.address,
            "permissions": list(self.permissions),
            "accessLevel": self.access_level,
            "registeredBy": self.registered_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            address=data["address"],
            permissions=list(data.get("permissions") or []),
            access_level=data.get("accessLevel", 0),
            registered_by=data.get("registeredBy"),
        )


@dataclass(frozen=True)
class TokenData:
    """Decoded, already-authenticated request token."""
    created_by: str
    valid_until: Optional[int] = None


@dataclass(frozen=True)
class BundleClaim:
    """Entries exclusively claimed under one bundle stub id."""
    stub_id: str
    assets: List[dict] = field(default_factory=list)
    events: List[dict] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.assets) + len(self.events)

    def __bool__(self):
        return self.size > 0


@dataclass(frozen=True)
class ProofReceipt:
    """Ledger acknowledgement of an anchored bundle id."""
    bundle_id: str
    block_number: int

    def to_dict(self) -> dict:
        return asdict(self)


class BundleStage(str, Enum):
    """Lifecycle of one bundle finalisation."""
    UNBUNDLED = "unbundled"
    CLAIMED = "claimed"
    ASSEMBLED = "assembled"
    STORED = "stored"
    PROOF_ANCHORED = "proof_anchored"
