# tests/test_access.py
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from anchorstore.access.definitions import AccountAccessDefinitions, DEFAULT_ADMIN_PERMISSIONS
from anchorstore.core.errors import PermissionDeniedError, ValidationError
from anchorstore.core.types import Account, TokenData
from anchorstore.crypto.keys import NodeKeyPair

ADDRESS = "0x" + "ab" * 32


def repository_with(account):
    repo = MagicMock()
    repo.get = AsyncMock(return_value=account)
    return repo


@pytest.fixture
def writer() -> Account:
    return Account(address=ADDRESS, permissions=["create_entity"], access_level=3)


class TestPermissions:

    def test_has_permission(self, writer):
        access = AccountAccessDefinitions(MagicMock())
        assert access.has_permission(writer, "create_entity")
        assert not access.has_permission(writer, "register_account")

    def test_ensure_has_permission_passes(self, writer):
        repo = repository_with(writer)
        asyncio.run(AccountAccessDefinitions(repo).ensure_has_permission(ADDRESS, "create_entity"))
        repo.get.assert_awaited_once_with(ADDRESS)

    def test_forbidden_and_unknown_look_the_same(self, writer):
        with pytest.raises(PermissionDeniedError) as forbidden:
            asyncio.run(AccountAccessDefinitions(repository_with(writer)).ensure_has_permission(ADDRESS, "register_account"))
        with pytest.raises(PermissionDeniedError) as unknown:
            asyncio.run(AccountAccessDefinitions(repository_with(None)).ensure_has_permission(ADDRESS, "register_account"))
        assert str(forbidden.value) == str(unknown.value)

    def test_default_admin_permissions(self):
        permissions = AccountAccessDefinitions(MagicMock()).default_admin_permissions()
        assert permissions == ["change_account_permissions", "register_account", "create_entity"]
        permissions.append("mutated")
        assert "mutated" not in DEFAULT_ADMIN_PERMISSIONS


class TestTokenAccessLevel:

    def test_no_token_is_public(self):
        repo = repository_with(None)
        assert asyncio.run(AccountAccessDefinitions(repo).get_token_creator_access_level(None)) == 0
        repo.get.assert_not_awaited()

    def test_unregistered_creator_is_public(self):
        token = TokenData(created_by=ADDRESS)
        assert asyncio.run(AccountAccessDefinitions(repository_with(None)).get_token_creator_access_level(token)) == 0

    def test_registered_creator_level(self, writer):
        token = TokenData(created_by=ADDRESS)
        assert asyncio.run(AccountAccessDefinitions(repository_with(writer)).get_token_creator_access_level(token)) == 3


class TestAccountRequests:

    @pytest.fixture
    def access(self):
        return AccountAccessDefinitions(MagicMock())

    @pytest.fixture
    def request_body(self):
        return {
            "address": NodeKeyPair.generate().address,
            "permissions": ["create_entity", "register_account"],
            "accessLevel": 4,
        }

    def test_valid_add_request(self, access, request_body):
        access.validate_add_account_request(request_body)

    def test_empty_permissions_allowed(self, access, request_body):
        access.validate_add_account_request({**request_body, "permissions": []})

    @pytest.mark.parametrize("field", ["address", "permissions", "accessLevel"])
    def test_add_request_missing_field(self, access, request_body, field):
        del request_body[field]
        with pytest.raises(ValidationError):
            access.validate_add_account_request(request_body)

    @pytest.mark.parametrize("field, value", [
        ("accessLevel", 3.14),
        ("accessLevel", 2.0),
        ("accessLevel", -10),
        ("accessLevel", "1"),
        ("permissions", "notArrayPermission"),
        ("permissions", [1, 2]),
        ("address", "0x1234"),
        ("address", "not-an-address"),
        ("extraField", "abc"),
    ])
    def test_add_request_rejected(self, access, request_body, field, value):
        request_body[field] = value
        with pytest.raises(ValidationError) as excinfo:
            access.validate_add_account_request(request_body)
        assert excinfo.value.errors

    @pytest.mark.parametrize("body", [
        {},
        {"accessLevel": 2},
        {"permissions": ["create_entity"]},
        {"permissions": [], "accessLevel": 0},
    ])
    def test_valid_modify_request(self, access, body):
        access.validate_modify_account_request(body)

    @pytest.mark.parametrize("body", [
        {"accessLevel": 3.14},
        {"accessLevel": 2.0},
        {"accessLevel": -10},
        {"permissions": "notArrayPermission"},
        {"address": ADDRESS},
        {"extraField": "abc"},
    ])
    def test_modify_request_rejected(self, access, body):
        with pytest.raises(ValidationError):
            access.validate_modify_account_request(body)
