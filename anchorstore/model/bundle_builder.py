# anchorstore/model/bundle_builder.py
from typing import Any, Dict, List, TYPE_CHECKING

from anchorstore.core.errors import ValidationError
from anchorstore.model.schemas import ensure_matches

if TYPE_CHECKING:
    from anchorstore.crypto.identity import IdentityManager
    from anchorstore.model.entity_builder import EntityBuilder


class BundleBuilder:
    """
    Assembles and validates bundles:

        bundleId = hash(content)
        content  = {idData, signature, entries}
        idData   = {createdBy, timestamp, entriesHash = hash(entries)}
        signature over idData by createdBy
    """

    def __init__(self, identity_manager: "IdentityManager", entity_builder: "EntityBuilder"):
        self.identity_manager = identity_manager
        self.entity_builder = entity_builder

    def assemble_bundle(self, assets: List[dict], events: List[dict], timestamp: int, creator_secret: str) -> dict:
        """
        Strip bundle back-references → stub events → hash entries → sign idData → hash content.
        Deterministic for fixed inputs.
        """
        stripped_assets = [self.entity_builder.remove_bundle(asset) for asset in assets]
        stripped_events = [self.entity_builder.remove_bundle(event) for event in events]
        event_stubs = [
            self.entity_builder.prepare_event_for_bundle_publication(event) for event in stripped_events
        ]

        entries = stripped_assets + event_stubs
        id_data = {
            "createdBy": self.identity_manager.address_from_secret(creator_secret),
            "timestamp": timestamp,
            "entriesHash": self.identity_manager.calculate_hash(entries),
        }
        content = {
            "idData": id_data,
            "signature": self.identity_manager.sign(creator_secret, id_data),
            "entries": entries,
        }
        return {
            "bundleId": self.identity_manager.calculate_hash(content),
            "content": content,
        }

    def validate_bundle(self, bundle: Dict[str, Any]) -> None:
        # cheap structural checks first, then hashes, then the signature
        ensure_matches(bundle, "BUNDLE_SCHEMA", "bundle")

        content = bundle["content"]
        id_data = content["idData"]

        if not self.identity_manager.check_hash_matches(bundle["bundleId"], content):
            raise ValidationError("bundleId does not match the hash of content")
        if not self.identity_manager.check_hash_matches(id_data["entriesHash"], content["entries"]):
            raise ValidationError("entriesHash does not match the hash of entries")

        self.identity_manager.validate_signature(id_data["createdBy"], content["signature"], id_data)
