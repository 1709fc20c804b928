# tests/conftest.py
import asyncio
from types import SimpleNamespace

import pytest

from anchorstore.config import Settings
from anchorstore.core.types import Account, TokenData
from anchorstore.crypto.identity import IdentityManager
from anchorstore.crypto.keys import NodeKeyPair
from anchorstore.engine.data_model_engine import build_engine
from anchorstore.model.entity_builder import EntityBuilder
from anchorstore.storage.memory import MemoryStorage

BASE_TS = 1_760_000_000


@pytest.fixture
def identity() -> IdentityManager:
    return IdentityManager()


@pytest.fixture
def builder(identity: IdentityManager) -> EntityBuilder:
    return EntityBuilder(identity)


@pytest.fixture
def creator() -> NodeKeyPair:
    return NodeKeyPair.generate()


@pytest.fixture
def make_asset(identity: IdentityManager):
    """Factory for correctly hashed + signed assets."""
    def _make(signer: NodeKeyPair, timestamp: int = BASE_TS, sequence_number: int | None = None) -> dict:
        id_data = {"createdBy": signer.address, "timestamp": timestamp}
        if sequence_number is not None:
            id_data["sequenceNumber"] = sequence_number
        content = {"idData": id_data, "signature": identity.sign(signer.secret, id_data)}
        return {"assetId": identity.calculate_hash(content), "content": content}
    return _make


@pytest.fixture
def make_event(identity: IdentityManager):
    """Factory for correctly hashed + signed events (data optional)."""
    def _make(
        signer: NodeKeyPair,
        asset_id: str,
        access_level: int = 0,
        data=None,
        timestamp: int = BASE_TS,
    ) -> dict:
        id_data = {
            "createdBy": signer.address,
            "timestamp": timestamp,
            "assetId": asset_id,
            "accessLevel": access_level,
        }
        if data is not None:
            id_data["dataHash"] = identity.calculate_hash(data)
        content = {"idData": id_data, "signature": identity.sign(signer.secret, id_data)}
        event = {"eventId": identity.calculate_hash(content), "content": content}
        if data is not None:
            event["data"] = data
        return event
    return _make


@pytest.fixture
def node_keys() -> NodeKeyPair:
    return NodeKeyPair.generate()


@pytest.fixture
def node(node_keys: NodeKeyPair):
    """
    Engine over in-memory storage with a genesis admin.
    node.admin is the admin key pair, node.admin_token its token.
    """
    storage = MemoryStorage()
    settings = Settings(node_private_key=node_keys.secret, anchor_timeout=1.0, anchor_retries=0, anchor_backoff=0.01)
    engine = build_engine(storage, settings)
    admin = asyncio.run(engine.create_admin_account())
    return SimpleNamespace(
        engine=engine,
        storage=storage,
        settings=settings,
        admin=admin,
        admin_token=TokenData(created_by=admin.address),
        node_keys=node_keys,
    )


@pytest.fixture
def register(node):
    """Register a fresh account through the admin and return its key pair."""
    def _register(permissions=("create_entity",), access_level: int = 0) -> NodeKeyPair:
        keys = NodeKeyPair.generate()
        request = {"address": keys.address, "permissions": list(permissions), "accessLevel": access_level}
        account = asyncio.run(node.engine.add_account(request, node.admin_token))
        assert isinstance(account, Account)
        return keys
    return _register
