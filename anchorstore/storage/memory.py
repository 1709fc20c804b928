# anchorstore/storage/memory.py
"""In-process repositories. Used by tests and demos; nothing survives the process."""

import copy
import logging
from typing import Any, Dict, List, Optional

from anchorstore.core.types import Account, BundleClaim, ProofReceipt
from anchorstore.core.errors import NotFoundError
from . import EntityRepository, AccountRepository, ProofRepository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def _with_bundle(entry: dict, bundle_id: Optional[str]) -> dict:
    result = copy.deepcopy(entry)
    result.setdefault("metadata", {})["bundleId"] = bundle_id
    return result


class _Slot:
    """Stored entry plus its claim/bundle markers."""
    __slots__ = ("entry", "stub_id", "bundle_id")

    def __init__(self, entry: dict):
        self.entry = copy.deepcopy(entry)
        self.stub_id: Optional[str] = None
        self.bundle_id: Optional[str] = None

    def view(self) -> dict:
        return _with_bundle(self.entry, self.bundle_id)


class MemoryEntityRepository(EntityRepository):

    def __init__(self):
        self._assets: Dict[str, _Slot] = {}
        self._events: Dict[str, _Slot] = {}
        self._bundles: Dict[str, dict] = {}
        self._bundle_stubs: Dict[str, str] = {}

    async def store_asset(self, asset: dict) -> None:
        self._assets.setdefault(asset["assetId"], _Slot(asset))

    async def get_asset(self, asset_id: str) -> Optional[dict]:
        slot = self._assets.get(asset_id)
        return slot.view() if slot else None

    async def store_event(self, event: dict) -> None:
        self._events.setdefault(event["eventId"], _Slot(event))

    async def get_event(self, event_id: str, access_level: int) -> Optional[dict]:
        slot = self._events.get(event_id)
        if slot is None or slot.entry["content"]["idData"]["accessLevel"] > access_level:
            return None
        return slot.view()

    async def find_events(self, params: Dict[str, Any], access_level: int) -> List[dict]:
        def matches(id_data: dict) -> bool:
            if id_data["accessLevel"] > access_level:
                return False
            if "assetId" in params and id_data["assetId"] != params["assetId"]:
                return False
            if "createdBy" in params and id_data["createdBy"] != params["createdBy"]:
                return False
            if "fromTimestamp" in params and id_data["timestamp"] < params["fromTimestamp"]:
                return False
            if "toTimestamp" in params and id_data["timestamp"] > params["toTimestamp"]:
                return False
            return True

        found = [slot for slot in self._events.values() if matches(slot.entry["content"]["idData"])]
        found.sort(key=lambda slot: (-slot.entry["content"]["idData"]["timestamp"], slot.entry["eventId"]))

        per_page = params.get("perPage", DEFAULT_PAGE_SIZE)
        start = params.get("page", 0) * per_page
        return [slot.view() for slot in found[start:start + per_page]]

    def _claimable(self, slots: Dict[str, _Slot], stub_id: str) -> List[_Slot]:
        return [
            slot for slot in slots.values()
            if slot.bundle_id is None and slot.stub_id in (None, stub_id)
        ]

    async def begin_bundle(self, stub_id: str) -> BundleClaim:
        # no await between selecting and marking: the claim is atomic for this event loop
        assets = self._claimable(self._assets, stub_id)
        events = self._claimable(self._events, stub_id)
        for slot in assets + events:
            slot.stub_id = stub_id
        logger.debug("Claimed %d assets and %d events under %s", len(assets), len(events), stub_id)
        return BundleClaim(
            stub_id=stub_id,
            assets=[slot.view() for slot in assets],
            events=[slot.view() for slot in events],
        )

    async def cancel_bundle(self, stub_id: str) -> int:
        released = 0
        for slot in list(self._assets.values()) + list(self._events.values()):
            if slot.stub_id == stub_id and slot.bundle_id is None:
                slot.stub_id = None
                released += 1
        return released

    async def store_bundle(self, bundle: dict, stub_id: Optional[str] = None) -> None:
        self._bundles.setdefault(bundle["bundleId"], copy.deepcopy(bundle))
        if stub_id is not None:
            self._bundle_stubs.setdefault(stub_id, bundle["bundleId"])

    async def get_bundle_for_stub(self, stub_id: str) -> Optional[dict]:
        bundle_id = self._bundle_stubs.get(stub_id)
        return await self.get_bundle(bundle_id) if bundle_id else None

    async def end_bundle(self, stub_id: str, bundle_id: str) -> None:
        for slot in list(self._assets.values()) + list(self._events.values()):
            if slot.stub_id == stub_id and slot.bundle_id is None:
                slot.bundle_id = bundle_id

    async def get_bundle(self, bundle_id: str) -> Optional[dict]:
        bundle = self._bundles.get(bundle_id)
        return copy.deepcopy(bundle) if bundle else None

    async def store_bundle_proof_block(self, bundle_id: str, block_number: int) -> None:
        bundle = self._bundles.get(bundle_id)
        if bundle is None:
            raise NotFoundError(f"No bundle with id = {bundle_id} found")
        bundle.setdefault("metadata", {})["proofBlock"] = block_number


class MemoryAccountRepository(AccountRepository):

    def __init__(self):
        self._accounts: Dict[str, Account] = {}

    async def count(self) -> int:
        return len(self._accounts)

    async def get(self, address: str) -> Optional[Account]:
        account = self._accounts.get(address)
        return copy.deepcopy(account) if account else None

    async def store(self, account: Account) -> None:
        self._accounts[account.address] = copy.deepcopy(account)

    async def update(self, address: str, changes: Dict[str, Any]) -> Account:
        account = self._accounts.get(address)
        if account is None:
            raise NotFoundError(f"Account {address} not found.")
        if "permissions" in changes:
            account.permissions = list(changes["permissions"])
        if "accessLevel" in changes:
            account.access_level = changes["accessLevel"]
        return copy.deepcopy(account)


class MemoryProofRepository(ProofRepository):
    """Pretend ledger: one block per newly anchored bundle id."""

    def __init__(self, first_block: int = 1):
        self._blocks: Dict[str, int] = {}
        self._next_block = first_block

    async def upload_proof(self, bundle_id: str) -> ProofReceipt:
        if bundle_id not in self._blocks:
            self._blocks[bundle_id] = self._next_block
            self._next_block += 1
        return ProofReceipt(bundle_id=bundle_id, block_number=self._blocks[bundle_id])


class MemoryStorage:
    """Bundle of in-memory repositories with the same surface as SQLiteStorage."""

    def __init__(self):
        self.entities = MemoryEntityRepository()
        self.accounts = MemoryAccountRepository()
        self.proofs = MemoryProofRepository()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
