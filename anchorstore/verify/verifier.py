# anchorstore/verify/verifier.py
import asyncio
from typing import List, Optional
from dataclasses import dataclass, field

from anchorstore.core.errors import ValidationError
from anchorstore.crypto.identity import IdentityManager
from anchorstore.model.schemas import schema_errors


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # e.g. "structure", "hash", "signature", "entry", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)
    entry_count: int = 0

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"Bundle is valid ✓ ({self.entry_count} entries)"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class BundleVerifier:
    """
    Offline verifier for published bundles.
    Checks the bundle envelope, then every entry it carries, and reports all failures.
    Index -1 refers to the bundle itself, 0..n-1 to entries.
    """

    def __init__(self, identity_manager: Optional[IdentityManager] = None):
        self.identity_manager = identity_manager or IdentityManager()

    def verify(self, bundle: dict) -> VerificationResult:
        result = VerificationResult(True)

        im = self.identity_manager

        # 1. Envelope shape
        structure_errors = schema_errors(bundle, "BUNDLE_SCHEMA")
        if structure_errors:
            for error in structure_errors:
                result.fail(-1, error, "structure")
            result.message = "Malformed bundle"
            return result

        # 2. Envelope hashes + signature
        content = bundle["content"]
        id_data = content["idData"]
        if not im.check_hash_matches(bundle["bundleId"], content):
            result.fail(-1, "bundleId does not match the hash of content", "hash")
        if not im.check_hash_matches(id_data["entriesHash"], content["entries"]):
            result.fail(-1, "entriesHash does not match the hash of entries", "hash")
        try:
            im.validate_signature(id_data["createdBy"], content["signature"], id_data)
        except ValidationError as e:
            result.fail(-1, str(e), "signature")

        # 3. Entries
        entries = content["entries"]
        result.entry_count = len(entries)
        for i, entry in enumerate(entries):
            for problem in self._entry_problems(entry):
                result.fail(i, problem, "entry")

        result.message = "Valid bundle" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def _entry_problems(self, entry: dict) -> List[str]:
        im = self.identity_manager
        if "assetId" in entry:
            entry_id = entry["assetId"]
        elif "eventId" in entry:
            entry_id = entry["eventId"]
        else:
            return ["Entry is neither an asset nor an event"]

        content = entry.get("content")
        if not isinstance(content, dict) or not isinstance(content.get("idData"), dict):
            return [f"{entry_id}: missing content.idData"]

        problems = []
        if not im.check_hash_matches(entry_id, content):
            problems.append(f"{entry_id}: id does not match the hash of content")

        id_data = content["idData"]
        if "data" in entry and not im.check_hash_matches(id_data.get("dataHash"), entry["data"]):
            problems.append(f"{entry_id}: dataHash does not match the hash of data")

        try:
            im.validate_signature(id_data.get("createdBy"), content.get("signature"), id_data)
        except ValidationError as e:
            problems.append(f"{entry_id}: {e}")
        return problems

    def verify_from_storage(self, bundle_id: str, storage) -> VerificationResult:
        """
        Load a bundle from storage and verify it.
        Returns result with extra info if load fails.
        """
        try:
            bundle = asyncio.run(storage.entities.get_bundle(bundle_id))
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load bundle '{bundle_id}' from storage: {str(e)}",
                [VerificationFailure(-1, str(e), "storage")]
            )

        if bundle is None:
            return VerificationResult(
                False,
                f"Bundle '{bundle_id}' not found",
                [VerificationFailure(-1, "not found", "storage")]
            )

        return self.verify(bundle)
