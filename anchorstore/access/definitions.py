# anchorstore/access/definitions.py
import logging
from typing import Any, Dict, List, Optional

from anchorstore.core.errors import PermissionDeniedError
from anchorstore.core.types import Account, TokenData
from anchorstore.model.schemas import ensure_matches

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PERMISSIONS = ("change_account_permissions", "register_account", "create_entity")


class AccountAccessDefinitions:
    """Permission and access-level checks against accounts held in the account repository."""

    def __init__(self, account_repository):
        self.account_repository = account_repository

    def has_permission(self, account: Account, permission: str) -> bool:
        return permission in account.permissions

    async def ensure_has_permission(self, address: str, permission: str) -> None:
        """
        Raises PermissionDeniedError if the account is unknown or lacks the permission.
        Both cases produce the same message so callers can not tell which addresses are registered.
        """
        account = await self.account_repository.get(address)
        if account is None or not self.has_permission(account, permission):
            logger.info("Denied %r to %s", permission, address)
            raise PermissionDeniedError(f"{address} has no '{permission}' permission")

    async def get_token_creator_access_level(self, token: Optional[TokenData] = None) -> int:
        if token is None:
            return 0
        account = await self.account_repository.get(token.created_by)
        if account is None:
            return 0
        return account.access_level

    def default_admin_permissions(self) -> List[str]:
        return list(DEFAULT_ADMIN_PERMISSIONS)

    def validate_add_account_request(self, request: Dict[str, Any]) -> None:
        ensure_matches(request, "ADD_ACCOUNT_SCHEMA", "account registration")

    def validate_modify_account_request(self, request: Dict[str, Any]) -> None:
        ensure_matches(request, "MODIFY_ACCOUNT_SCHEMA", "account modification")
