# anchorstore/engine/data_model_engine.py
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from anchorstore.access.definitions import AccountAccessDefinitions
from anchorstore.config import Settings
from anchorstore.core.clock import get_timestamp
from anchorstore.core.errors import (
    InvalidParametersError,
    NotFoundError,
    PermissionDeniedError,
    UnavailableError,
    ValidationError,
)
from anchorstore.core.types import Account, BundleStage, ProofReceipt, TokenData
from anchorstore.crypto.identity import IdentityManager
from anchorstore.crypto.keys import NodeKeyPair
from anchorstore.model.entity_builder import EntityBuilder

logger = logging.getLogger(__name__)


class DataModelEngine:
    """
    Use-case layer: accounts, assets/events with permission checks, and the
    claim → assemble → store → anchor pipeline for bundles.

    Holds no mutable state of its own; the repositories are the source of truth.
    """

    def __init__(
        self,
        identity_manager: IdentityManager,
        entity_builder: EntityBuilder,
        entity_repository,
        proof_repository,
        account_repository,
        account_access_definitions: AccountAccessDefinitions,
        admin_access_level: int = 1000,
        anchor_timeout: float = 30.0,
        anchor_retries: int = 2,
        anchor_backoff: float = 1.0,
        clock: Callable[[], int] = get_timestamp,
    ):
        self.identity_manager = identity_manager
        self.entity_builder = entity_builder
        self.entity_repository = entity_repository
        self.proof_repository = proof_repository
        self.account_repository = account_repository
        self.account_access_definitions = account_access_definitions
        self.admin_access_level = admin_access_level
        self.anchor_timeout = anchor_timeout
        self.anchor_retries = anchor_retries
        self.anchor_backoff = anchor_backoff
        self.clock = clock

    # ── accounts

    async def create_admin_account(self, key_pair: Optional[NodeKeyPair] = None) -> NodeKeyPair:
        if await self.account_repository.count() > 0:
            raise ValidationError("Admin account already exists.")

        key_pair = key_pair or self.identity_manager.create_key_pair()
        admin = Account(
            address=key_pair.address,
            permissions=self.account_access_definitions.default_admin_permissions(),
            access_level=self.admin_access_level,
            registered_by=key_pair.address,
        )
        await self.account_repository.store(admin)
        logger.info("Genesis admin account %s created", admin.address)
        return key_pair

    async def add_account(self, account_request: Dict[str, Any], token: TokenData) -> Account:
        await self.account_access_definitions.ensure_has_permission(token.created_by, "register_account")
        self.account_access_definitions.validate_add_account_request(account_request)

        if await self.account_repository.get(account_request["address"]) is not None:
            raise ValidationError(f"Account {account_request['address']} is already registered")

        account = Account(
            address=account_request["address"],
            permissions=list(account_request["permissions"]),
            access_level=account_request["accessLevel"],
            registered_by=token.created_by,
        )
        await self.account_repository.store(account)
        logger.info("Account %s registered by %s", account.address, token.created_by)
        return account

    async def get_account(self, address: str, token: TokenData) -> Account:
        sender = await self.account_repository.get(token.created_by)
        if sender is None:
            raise PermissionDeniedError(f"Sender account {token.created_by} not found.")
        account = await self.account_repository.get(address)
        if account is None:
            raise NotFoundError(f"Account {address} not found.")
        return account

    async def modify_account(self, address: str, account_request: Dict[str, Any], token: TokenData) -> Account:
        await self.account_access_definitions.ensure_has_permission(token.created_by, "register_account")
        self.account_access_definitions.validate_modify_account_request(account_request)
        await self.get_account(address, token)
        account = await self.account_repository.update(address, account_request)
        logger.info("Account %s modified by %s: %s", address, token.created_by, sorted(account_request))
        return account

    # ── assets & events

    async def create_asset(self, asset: Dict[str, Any]) -> Dict[str, Any]:
        self.entity_builder.validate_asset(asset)
        creator = asset["content"]["idData"]["createdBy"]

        await self.account_access_definitions.ensure_has_permission(creator, "create_entity")

        augmented = self.entity_builder.set_bundle(asset, None)
        await self.entity_repository.store_asset(augmented)
        logger.info("Asset %s stored", augmented["assetId"])
        return augmented

    async def get_asset(self, asset_id: str) -> Dict[str, Any]:
        asset = await self.entity_repository.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"No asset with id = {asset_id} found")
        return asset

    async def create_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        self.entity_builder.validate_event(event)
        id_data = event["content"]["idData"]

        await self.account_access_definitions.ensure_has_permission(id_data["createdBy"], "create_entity")

        if await self.entity_repository.get_asset(id_data["assetId"]) is None:
            raise InvalidParametersError(f"Target asset with id={id_data['assetId']} doesn't exist")

        augmented = self.entity_builder.set_bundle(event, None)
        await self.entity_repository.store_event(augmented)
        logger.info("Event %s stored for asset %s", augmented["eventId"], id_data["assetId"])
        return augmented

    async def get_event(self, event_id: str, token: Optional[TokenData] = None) -> Dict[str, Any]:
        access_level = await self.account_access_definitions.get_token_creator_access_level(token)
        event = await self.entity_repository.get_event(event_id, access_level)
        if event is None:
            raise NotFoundError(f"No event with id = {event_id} found")
        return event

    async def find_events(self, params: Dict[str, Any], token: Optional[TokenData] = None) -> List[Dict[str, Any]]:
        validated = self.entity_builder.validate_and_cast_find_events_params(params)
        access_level = await self.account_access_definitions.get_token_creator_access_level(token)
        return await self.entity_repository.find_events(validated, access_level)

    # ── bundles

    async def get_bundle(self, bundle_id: str) -> Dict[str, Any]:
        bundle = await self.entity_repository.get_bundle(bundle_id)
        if bundle is None:
            raise NotFoundError(f"No bundle with id = {bundle_id} found")
        return bundle

    async def finalise_bundle(self, bundle_stub_id: str) -> Dict[str, Any]:
        """
        UNBUNDLED → CLAIMED → ASSEMBLED → STORED → PROOF_ANCHORED.

        A failure before the bundle is stored releases the claim. Once stored,
        the bundle is remembered under its stub: calling again with the same
        stub picks up the stored bundle at the entry-linking step instead of
        assembling a second one. A failed anchor leaves a valid, un-anchored
        bundle; anchor_bundle() re-submits it.
        """
        stage = BundleStage.UNBUNDLED
        try:
            bundle = await self.entity_repository.get_bundle_for_stub(bundle_stub_id)
            if bundle is not None:
                stage = BundleStage.STORED
                logger.info("Bundle %s: resuming stored bundle %s", bundle_stub_id, bundle["bundleId"])
            else:
                claim = await self.entity_repository.begin_bundle(bundle_stub_id)
                stage = BundleStage.CLAIMED
                logger.info("Bundle %s: claimed %d entries", bundle_stub_id, claim.size)

                try:
                    node_secret = self.identity_manager.node_private_key()
                    bundle = self.entity_builder.assemble_bundle(claim.assets, claim.events, self.clock(), node_secret)
                    stage = BundleStage.ASSEMBLED

                    await self.entity_repository.store_bundle(bundle, bundle_stub_id)
                    stage = BundleStage.STORED
                except Exception:
                    released = await self.entity_repository.cancel_bundle(bundle_stub_id)
                    logger.warning("Bundle %s: released %d claimed entries", bundle_stub_id, released)
                    raise

            await self.entity_repository.end_bundle(bundle_stub_id, bundle["bundleId"])
            logger.info("Bundle %s stored as %s", bundle_stub_id, bundle["bundleId"])

            receipt = await self._upload_proof(bundle["bundleId"])
            await self.entity_repository.store_bundle_proof_block(bundle["bundleId"], receipt.block_number)
            stage = BundleStage.PROOF_ANCHORED
        except Exception:
            logger.error("Bundle %s: finalisation stopped after stage %s", bundle_stub_id, stage.value)
            raise

        logger.info("Bundle %s anchored in block %d", bundle["bundleId"], receipt.block_number)
        bundle.setdefault("metadata", {})["proofBlock"] = receipt.block_number
        return bundle

    async def anchor_bundle(self, bundle_id: str) -> Dict[str, Any]:
        """(Re-)anchor an already stored bundle. Safe to repeat."""
        bundle = await self.get_bundle(bundle_id)
        receipt = await self._upload_proof(bundle_id)
        await self.entity_repository.store_bundle_proof_block(bundle_id, receipt.block_number)
        bundle.setdefault("metadata", {})["proofBlock"] = receipt.block_number
        logger.info("Bundle %s anchored in block %d", bundle_id, receipt.block_number)
        return bundle

    async def _upload_proof(self, bundle_id: str) -> ProofReceipt:
        attempts = self.anchor_retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self.proof_repository.upload_proof(bundle_id), timeout=self.anchor_timeout
                )
            except asyncio.TimeoutError as e:
                if attempt >= attempts:
                    raise UnavailableError(
                        f"Anchoring {bundle_id} timed out after {self.anchor_timeout}s"
                    ) from e
                reason = "timeout"
            except UnavailableError as e:
                if attempt >= attempts:
                    raise
                reason = str(e)
            logger.warning("Anchoring %s failed (attempt %d/%d): %s", bundle_id, attempt, attempts, reason)
            await asyncio.sleep(self.anchor_backoff * 2 ** (attempt - 1))


def build_engine(storage, settings: Optional[Settings] = None) -> DataModelEngine:
    """Wire an engine over a storage object exposing .entities/.accounts/.proofs."""
    settings = settings or Settings.from_env()
    identity_manager = IdentityManager(settings.node_private_key)
    return DataModelEngine(
        identity_manager=identity_manager,
        entity_builder=EntityBuilder(identity_manager),
        entity_repository=storage.entities,
        proof_repository=storage.proofs,
        account_repository=storage.accounts,
        account_access_definitions=AccountAccessDefinitions(storage.accounts),
        admin_access_level=settings.admin_access_level,
        anchor_timeout=settings.anchor_timeout,
        anchor_retries=settings.anchor_retries,
        anchor_backoff=settings.anchor_backoff,
    )
