# examples/supply_chain_demo.py
# Run with: poetry run python examples/supply_chain_demo.py
#
# Walks one shipment through the store: genesis admin, a registered carrier,
# an asset with public and restricted events, then a signed and anchored bundle.

import asyncio
import copy

from anchorstore.config import Settings
from anchorstore.core.clock import get_timestamp
from anchorstore.core.types import TokenData
from anchorstore.crypto.identity import IdentityManager
from anchorstore.crypto.keys import NodeKeyPair
from anchorstore.engine.data_model_engine import build_engine
from anchorstore.storage.memory import MemoryStorage
from anchorstore.verify.verifier import BundleVerifier


# =============================================================================
# Client-side document construction
# =============================================================================

class Carrier:
    """Signs assets and events the way a client application would before submitting them."""

    def __init__(self, key_pair: NodeKeyPair, identity: IdentityManager):
        self.key_pair = key_pair
        self.identity = identity

    def asset(self, sequence_number: int) -> dict:
        id_data = {
            "createdBy": self.key_pair.address,
            "timestamp": get_timestamp(),
            "sequenceNumber": sequence_number,
        }
        content = {"idData": id_data, "signature": self.identity.sign(self.key_pair.secret, id_data)}
        return {"assetId": self.identity.calculate_hash(content), "content": content}

    def event(self, asset_id: str, data: dict, access_level: int = 0) -> dict:
        id_data = {
            "createdBy": self.key_pair.address,
            "timestamp": get_timestamp(),
            "assetId": asset_id,
            "accessLevel": access_level,
            "dataHash": self.identity.calculate_hash(data),
        }
        content = {"idData": id_data, "signature": self.identity.sign(self.key_pair.secret, id_data)}
        return {"eventId": self.identity.calculate_hash(content), "content": content, "data": data}


# =============================================================================
# DEMO
# =============================================================================

async def main():
    node_keys = NodeKeyPair.generate()
    storage = MemoryStorage()
    engine = build_engine(storage, Settings(node_private_key=node_keys.secret))

    print("\n[Genesis]")
    admin = await engine.create_admin_account()
    admin_token = TokenData(created_by=admin.address)
    print(f"  admin: {admin.address[:18]}...")

    print("\n[Accounts]")
    carrier_keys = NodeKeyPair.generate()
    await engine.add_account(
        {"address": carrier_keys.address, "permissions": ["create_entity"], "accessLevel": 0}, admin_token
    )
    auditor_keys = NodeKeyPair.generate()
    await engine.add_account(
        {"address": auditor_keys.address, "permissions": [], "accessLevel": 2}, admin_token
    )
    print(f"  carrier: {carrier_keys.address[:18]}... (create_entity)")
    print(f"  auditor: {auditor_keys.address[:18]}... (access level 2)")

    print("\n[Shipment]")
    carrier = Carrier(carrier_keys, engine.identity_manager)
    container = await engine.create_asset(carrier.asset(sequence_number=0))
    asset_id = container["assetId"]
    await engine.create_event(carrier.event(asset_id, {"step": "loaded", "port": "Rotterdam"}))
    await engine.create_event(carrier.event(asset_id, {"step": "customs", "declaredValue": 48000}, access_level=2))
    print(f"  asset {asset_id[:18]}... with 2 events")

    public = await engine.find_events({"assetId": asset_id})
    audited = await engine.find_events({"assetId": asset_id}, TokenData(created_by=auditor_keys.address))
    print(f"  visible without token: {len(public)}, visible to auditor: {len(audited)}")

    print("\n[Bundle]")
    bundle = await engine.finalise_bundle("demo-stub-1")
    print(f"  bundle {bundle['bundleId'][:18]}... anchored in block {bundle['metadata']['proofBlock']}")
    for i, entry in enumerate(bundle["content"]["entries"]):
        kind = "asset" if "assetId" in entry else "event"
        payload = "data" if "data" in entry else "stub"
        print(f"  [{i}] {kind:5} | {payload}")

    print("\n[Verification]")
    verifier = BundleVerifier()
    result = verifier.verify(bundle)
    print(f"  {result}")

    print("\n[Tamper detection]")
    tampered = copy.deepcopy(bundle)
    tampered["content"]["entries"][1]["data"]["port"] = "Antwerp"
    tampered_result = verifier.verify(tampered)
    print(f"  Tampering detected: {not tampered_result.is_valid}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
