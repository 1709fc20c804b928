"""
Storage backends: entity, account and proof repositories.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from anchorstore.core.types import Account, BundleClaim, ProofReceipt


class EntityRepository(ABC):
    """Assets, events and bundles. Entries carry metadata.bundleId once bundled."""

    @abstractmethod
    async def store_asset(self, asset: dict) -> None:
        pass

    @abstractmethod
    async def get_asset(self, asset_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def store_event(self, event: dict) -> None:
        pass

    @abstractmethod
    async def get_event(self, event_id: str, access_level: int) -> Optional[dict]:
        """None when absent or when the event's accessLevel exceeds access_level."""

    @abstractmethod
    async def find_events(self, params: Dict[str, Any], access_level: int) -> List[dict]:
        pass

    @abstractmethod
    async def begin_bundle(self, stub_id: str) -> BundleClaim:
        """
        Exclusively claim every entry that is neither bundled nor claimed by another stub.
        Re-claiming with the same stub before end_bundle returns the same entries.
        """

    @abstractmethod
    async def cancel_bundle(self, stub_id: str) -> int:
        """Release an unfinished claim. Returns the number of released entries."""

    @abstractmethod
    async def store_bundle(self, bundle: dict, stub_id: Optional[str] = None) -> None:
        """Persist a signed bundle, remembering the stub it was assembled from."""

    @abstractmethod
    async def get_bundle_for_stub(self, stub_id: str) -> Optional[dict]:
        """The bundle already stored for stub_id, if a run got that far."""

    @abstractmethod
    async def end_bundle(self, stub_id: str, bundle_id: str) -> None:
        pass

    @abstractmethod
    async def get_bundle(self, bundle_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def store_bundle_proof_block(self, bundle_id: str, block_number: int) -> None:
        pass


class AccountRepository(ABC):

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def get(self, address: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def store(self, account: Account) -> None:
        pass

    @abstractmethod
    async def update(self, address: str, changes: Dict[str, Any]) -> Account:
        """Apply a partial wire-form update ({permissions?, accessLevel?})."""


class ProofRepository(ABC):
    """Ledger-facing anchor. Uploading the same bundle id twice must be harmless."""

    @abstractmethod
    async def upload_proof(self, bundle_id: str) -> ProofReceipt:
        pass


def create_storage(uri: str):
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        # Extract everything after sqlite://
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())

    elif uri.startswith("memory:"):
        from .memory import MemoryStorage
        return MemoryStorage()

    elif uri.strip() and "://" not in uri:
        # Plain file path → SQLite
        from .sqlite import SQLiteStorage
        return SQLiteStorage(Path(uri.strip()).resolve())
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


__all__ = [
    "EntityRepository",
    "AccountRepository",
    "ProofRepository",
    "create_storage",
]
