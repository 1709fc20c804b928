# anchorstore/model/entity_builder.py
import copy
from typing import Any, Dict, List, Optional

from anchorstore.core.errors import ValidationError
from anchorstore.crypto.identity import IdentityManager
from anchorstore.model.bundle_builder import BundleBuilder
from anchorstore.model.schemas import ensure_matches

_INTEGER_FILTERS = ("fromTimestamp", "toTimestamp", "page", "perPage")


class EntityBuilder:
    """
    Shape and integrity rules for assets and events, plus the bundle back-reference
    (metadata.bundleId) the store keeps on every entry.
    Bundle assembly/validation is delegated to a BundleBuilder bound to this instance.
    """

    def __init__(self, identity_manager: IdentityManager):
        self.identity_manager = identity_manager
        self.bundle_builder = BundleBuilder(identity_manager, self)

    def validate_asset(self, asset: Dict[str, Any]) -> None:
        ensure_matches(asset, "ASSET_SCHEMA", "asset")
        content = asset["content"]
        if not self.identity_manager.check_hash_matches(asset["assetId"], content):
            raise ValidationError("assetId does not match the hash of content")
        self.identity_manager.validate_signature(
            content["idData"]["createdBy"], content["signature"], content["idData"]
        )

    def validate_event(self, event: Dict[str, Any]) -> None:
        ensure_matches(event, "EVENT_SCHEMA", "event")
        content = event["content"]
        id_data = content["idData"]
        if not self.identity_manager.check_hash_matches(event["eventId"], content):
            raise ValidationError("eventId does not match the hash of content")
        if "data" in event:
            if "dataHash" not in id_data:
                raise ValidationError("Event carries data but idData.dataHash is missing")
            if not self.identity_manager.check_hash_matches(id_data["dataHash"], event["data"]):
                raise ValidationError("dataHash does not match the hash of data")
        self.identity_manager.validate_signature(id_data["createdBy"], content["signature"], id_data)

    def set_bundle(self, entry: Dict[str, Any], bundle_id: Optional[str]) -> Dict[str, Any]:
        """Copy of entry with metadata.bundleId set to bundle_id (None = not bundled yet)."""
        result = copy.deepcopy(entry)
        result.setdefault("metadata", {})["bundleId"] = bundle_id
        return result

    def remove_bundle(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(entry)
        metadata = result.get("metadata")
        if isinstance(metadata, dict):
            metadata.pop("bundleId", None)
            if not metadata:
                del result["metadata"]
        return result

    def prepare_event_for_bundle_publication(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Public form of an event. Restricted events (accessLevel > 0) lose their data payload;
        eventId, signature and dataHash stay, so the stub is still verifiable.
        """
        if event["content"]["idData"]["accessLevel"] == 0:
            return copy.deepcopy(event)
        return {key: copy.deepcopy(value) for key, value in event.items() if key != "data"}

    def validate_and_cast_find_events_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(params, dict):
            raise ValidationError("Query parameters must be an object")

        cast = dict(params)
        for key in _INTEGER_FILTERS:
            value = cast.get(key)
            if isinstance(value, str):
                stripped = value.strip()
                if not stripped.isdigit():
                    raise ValidationError(f"{key} must be a non-negative integer, got {value!r}")
                cast[key] = int(stripped)

        ensure_matches(cast, "FIND_EVENTS_SCHEMA", "query parameters")

        if "fromTimestamp" in cast and "toTimestamp" in cast and cast["fromTimestamp"] > cast["toTimestamp"]:
            raise ValidationError("fromTimestamp must not be later than toTimestamp")
        return cast

    def assemble_bundle(self, assets: List[dict], events: List[dict], timestamp: int, creator_secret: str) -> dict:
        return self.bundle_builder.assemble_bundle(assets, events, timestamp, creator_secret)

    def validate_bundle(self, bundle: Dict[str, Any]) -> None:
        self.bundle_builder.validate_bundle(bundle)
