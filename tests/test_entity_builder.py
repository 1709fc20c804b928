# tests/test_entity_builder.py
import pytest

from anchorstore.core.errors import ValidationError
from anchorstore.crypto.keys import NodeKeyPair
from anchorstore.model.entity_builder import EntityBuilder

from dict_utils import without, with_value


@pytest.fixture
def asset(make_asset, creator):
    return make_asset(creator)


@pytest.fixture
def event(make_event, creator, asset):
    return make_event(creator, asset["assetId"], access_level=2, data={"temperature": -18, "unit": "C"})


class TestAssetValidation:

    def test_valid_asset_passes(self, builder: EntityBuilder, asset):
        builder.validate_asset(asset)

    def test_sequence_number_and_metadata_allowed(self, builder: EntityBuilder, make_asset, creator):
        builder.validate_asset(with_value(make_asset(creator, sequence_number=4), "metadata", {"bundleId": None}))

    @pytest.mark.parametrize("field", [
        "assetId",
        "content",
        "content.signature",
        "content.idData",
        "content.idData.createdBy",
        "content.idData.timestamp",
    ])
    def test_missing_field_rejected(self, builder: EntityBuilder, asset, field):
        with pytest.raises(ValidationError):
            builder.validate_asset(without(asset, field))

    @pytest.mark.parametrize("path", ["extra", "content.extra", "content.idData.extra"])
    def test_extra_field_rejected(self, builder: EntityBuilder, asset, path):
        with pytest.raises(ValidationError):
            builder.validate_asset(with_value(asset, path, "surplus"))

    @pytest.mark.parametrize("timestamp", [-1, 3.14, 1700000000.0, "1700000000", None])
    def test_malformed_timestamp_rejected(self, builder: EntityBuilder, asset, timestamp):
        with pytest.raises(ValidationError):
            builder.validate_asset(with_value(asset, "content.idData.timestamp", timestamp))

    def test_asset_id_must_match_content(self, builder: EntityBuilder, make_asset, creator):
        other = make_asset(creator, timestamp=1)
        with pytest.raises(ValidationError, match="assetId"):
            builder.validate_asset(with_value(make_asset(creator), "assetId", other["assetId"]))

    def test_asset_id_is_case_sensitive(self, builder: EntityBuilder, asset):
        shouted = "0x" + asset["assetId"][2:].upper()
        with pytest.raises(ValidationError):
            builder.validate_asset(with_value(asset, "assetId", shouted))

    def test_created_by_must_be_lowercase(self, builder: EntityBuilder, asset):
        shouted = "0x" + asset["content"]["idData"]["createdBy"][2:].upper()
        with pytest.raises(ValidationError):
            builder.validate_asset(with_value(asset, "content.idData.createdBy", shouted))

    def test_signature_must_come_from_creator(self, builder: EntityBuilder, identity, creator):
        impostor = NodeKeyPair.generate()
        id_data = {"createdBy": creator.address, "timestamp": 5}
        content = {"idData": id_data, "signature": identity.sign(impostor.secret, id_data)}
        forged = {"assetId": identity.calculate_hash(content), "content": content}
        with pytest.raises(ValidationError, match="Signature"):
            builder.validate_asset(forged)


class TestEventValidation:

    def test_valid_event_passes(self, builder: EntityBuilder, event):
        builder.validate_event(event)

    def test_event_without_data_passes(self, builder: EntityBuilder, make_event, creator, asset):
        builder.validate_event(make_event(creator, asset["assetId"]))

    @pytest.mark.parametrize("field", [
        "eventId",
        "content",
        "content.signature",
        "content.idData",
        "content.idData.createdBy",
        "content.idData.timestamp",
        "content.idData.assetId",
        "content.idData.accessLevel",
    ])
    def test_missing_field_rejected(self, builder: EntityBuilder, event, field):
        with pytest.raises(ValidationError):
            builder.validate_event(without(event, field))

    @pytest.mark.parametrize("path", ["extra", "content.extra", "content.idData.extra"])
    def test_extra_field_rejected(self, builder: EntityBuilder, event, path):
        with pytest.raises(ValidationError):
            builder.validate_event(with_value(event, path, "surplus"))

    @pytest.mark.parametrize("level", [-1, 1.5, 2.0, "1", True])
    def test_malformed_access_level_rejected(self, builder: EntityBuilder, event, level):
        with pytest.raises(ValidationError):
            builder.validate_event(with_value(event, "content.idData.accessLevel", level))

    def test_data_without_data_hash_rejected(self, builder: EntityBuilder, identity, creator, asset):
        id_data = {"createdBy": creator.address, "timestamp": 1, "assetId": asset["assetId"], "accessLevel": 0}
        content = {"idData": id_data, "signature": identity.sign(creator.secret, id_data)}
        event = {"eventId": identity.calculate_hash(content), "content": content, "data": {"x": 1}}
        with pytest.raises(ValidationError, match="dataHash"):
            builder.validate_event(event)

    def test_data_must_match_data_hash(self, builder: EntityBuilder, event):
        with pytest.raises(ValidationError, match="dataHash"):
            builder.validate_event(with_value(event, "data", {"temperature": 25, "unit": "C"}))

    def test_event_id_must_match_content(self, builder: EntityBuilder, event):
        tampered = with_value(event, "content.idData.accessLevel", 0)
        with pytest.raises(ValidationError, match="eventId"):
            builder.validate_event(tampered)


class TestBundleStamp:

    def test_set_bundle_returns_copy(self, builder: EntityBuilder, asset):
        stamped = builder.set_bundle(asset, "0xb1")
        assert stamped["metadata"] == {"bundleId": "0xb1"}
        assert "metadata" not in asset

        cleared = builder.set_bundle(stamped, None)
        assert cleared["metadata"] == {"bundleId": None}
        assert stamped["metadata"]["bundleId"] == "0xb1"

    def test_remove_bundle(self, builder: EntityBuilder, asset):
        stamped = builder.set_bundle(asset, "0xb1")
        assert builder.remove_bundle(stamped) == asset
        assert stamped["metadata"] == {"bundleId": "0xb1"}

    def test_remove_bundle_keeps_other_metadata(self, builder: EntityBuilder, asset):
        stamped = with_value(builder.set_bundle(asset, None), "metadata.origin", "warehouse-7")
        assert builder.remove_bundle(stamped)["metadata"] == {"origin": "warehouse-7"}


class TestPublicationStub:

    def test_public_event_is_kept_whole(self, builder: EntityBuilder, make_event, creator, asset):
        public = make_event(creator, asset["assetId"], access_level=0, data={"x": 1})
        assert builder.prepare_event_for_bundle_publication(public) == public

    def test_restricted_event_loses_data(self, builder: EntityBuilder, event):
        stub = builder.prepare_event_for_bundle_publication(event)
        assert "data" not in stub
        assert stub["eventId"] == event["eventId"]
        assert stub["content"] == event["content"]
        assert "data" in event  # input untouched


class TestFindEventsParams:

    def test_casts_query_strings(self, builder: EntityBuilder, asset):
        params = {"assetId": asset["assetId"], "fromTimestamp": "10", "toTimestamp": 20, "page": "1", "perPage": "5"}
        assert builder.validate_and_cast_find_events_params(params) == {
            "assetId": asset["assetId"], "fromTimestamp": 10, "toTimestamp": 20, "page": 1, "perPage": 5
        }

    def test_empty_filter_ok(self, builder: EntityBuilder):
        assert builder.validate_and_cast_find_events_params({}) == {}

    @pytest.mark.parametrize("params", [
        {"unknown": 1},
        {"page": "-1"},
        {"page": "abc"},
        {"page": 2.0},
        {"perPage": 0},
        {"perPage": 101},
        {"fromTimestamp": 3.5},
        {"fromTimestamp": 20, "toTimestamp": 10},
        {"createdBy": "someone"},
    ])
    def test_rejects_malformed(self, builder: EntityBuilder, params):
        with pytest.raises(ValidationError):
            builder.validate_and_cast_find_events_params(params)
