# anchorstore/storage/sqlite.py
import os
import sqlite3
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from anchorstore.core.types import Account, BundleClaim, ProofReceipt
from anchorstore.core.canon import canonical_json_str
from anchorstore.core.errors import NotFoundError, UnavailableError, ValidationError
from . import EntityRepository, AccountRepository, ProofRepository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class SQLiteStorage:
    """SQLite persistent storage: one file holds entities, accounts and anchored proofs."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("ANCHORSTORE_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "anchorstore.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

        self.entities = SQLiteEntityRepository(self)
        self.accounts = SQLiteAccountRepository(self)
        self.proofs = SQLiteProofRepository(self)

    def _connect(self):
        try:
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.OperationalError as e:
            raise UnavailableError(f"Cannot open database {self.db_path}: {e}") from e

    def _create_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS assets (
                asset_id        TEXT    PRIMARY KEY,
                created_by      TEXT    NOT NULL,
                timestamp       INTEGER NOT NULL,
                document        TEXT    NOT NULL,
                bundle_stub     TEXT,
                bundle_id       TEXT
            );
            CREATE TABLE IF NOT EXISTS events (
                event_id        TEXT    PRIMARY KEY,
                asset_id        TEXT    NOT NULL,
                created_by      TEXT    NOT NULL,
                timestamp       INTEGER NOT NULL,
                access_level    INTEGER NOT NULL,
                document        TEXT    NOT NULL,
                bundle_stub     TEXT,
                bundle_id       TEXT
            );
            CREATE TABLE IF NOT EXISTS bundles (
                bundle_id       TEXT    PRIMARY KEY,
                created_by      TEXT    NOT NULL,
                timestamp       INTEGER NOT NULL,
                entry_count     INTEGER NOT NULL,
                document        TEXT    NOT NULL,
                proof_block     INTEGER,
                bundle_stub     TEXT
            );
            CREATE TABLE IF NOT EXISTS accounts (
                address         TEXT    PRIMARY KEY,
                permissions     TEXT    NOT NULL,
                access_level    INTEGER NOT NULL,
                registered_by   TEXT
            );
            CREATE TABLE IF NOT EXISTS proofs (
                bundle_id       TEXT    PRIMARY KEY,
                block_number    INTEGER NOT NULL UNIQUE
            );
            CREATE INDEX IF NOT EXISTS idx_assets_unbundled ON assets(bundle_id, bundle_stub);
            CREATE INDEX IF NOT EXISTS idx_events_unbundled ON events(bundle_id, bundle_stub);
            CREATE INDEX IF NOT EXISTS idx_events_asset     ON events(asset_id, timestamp);
        """)
        columns = {row[1] for row in self.conn.execute("PRAGMA table_info(bundles)")}
        if "bundle_stub" not in columns:
            # databases created before bundles remembered their stub
            self.conn.execute("ALTER TABLE bundles ADD COLUMN bundle_stub TEXT")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_bundles_stub ON bundles(bundle_stub)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.OperationalError as e:
            raise UnavailableError(f"Database error: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE … COMMIT: takes the write lock up front, so concurrent writers serialize."""
        conn = self.conn
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise UnavailableError(f"Database is busy: {e}") from e
        try:
            yield conn
            conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            conn.execute("ROLLBACK")
            raise UnavailableError(f"Database error: {e}") from e
        except BaseException:
            conn.execute("ROLLBACK")
            raise

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def counts(self) -> Dict[str, int]:
        """Record counts for the status view."""
        def scalar(sql: str) -> int:
            return self.execute(sql).fetchone()[0]

        return {
            "accounts": scalar("SELECT COUNT(*) FROM accounts"),
            "assets": scalar("SELECT COUNT(*) FROM assets"),
            "events": scalar("SELECT COUNT(*) FROM events"),
            "unbundled": scalar("SELECT COUNT(*) FROM assets WHERE bundle_id IS NULL")
                         + scalar("SELECT COUNT(*) FROM events WHERE bundle_id IS NULL"),
            "bundles": scalar("SELECT COUNT(*) FROM bundles"),
            "unanchored": scalar("SELECT COUNT(*) FROM bundles WHERE proof_block IS NULL"),
        }

    def list_bundles(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent bundles first."""
        cursor = self.execute("""
            SELECT bundle_id, created_by, timestamp, entry_count, proof_block
            FROM bundles ORDER BY timestamp DESC, bundle_id LIMIT ?
        """, (limit,))
        return [
            {
                "bundleId": bid,
                "createdBy": creator,
                "timestamp": ts,
                "entryCount": count,
                "proofBlock": block,
            }
            for bid, creator, ts, count, block in cursor.fetchall()
        ]


def _entry_view(document: str, bundle_id: Optional[str]) -> dict:
    entry = json.loads(document)
    entry.setdefault("metadata", {})["bundleId"] = bundle_id
    return entry


def _bundle_view(document: str, proof_block: Optional[int]) -> dict:
    bundle = json.loads(document)
    if proof_block is not None:
        bundle.setdefault("metadata", {})["proofBlock"] = proof_block
    return bundle


class SQLiteEntityRepository(EntityRepository):

    def __init__(self, storage: SQLiteStorage):
        self.storage = storage

    async def store_asset(self, asset: dict) -> None:
        id_data = asset["content"]["idData"]
        self.storage.execute("""
            INSERT OR IGNORE INTO assets (asset_id, created_by, timestamp, document)
            VALUES (?, ?, ?, ?)
        """, (asset["assetId"], id_data["createdBy"], id_data["timestamp"], canonical_json_str(asset)))

    async def get_asset(self, asset_id: str) -> Optional[dict]:
        row = self.storage.execute(
            "SELECT document, bundle_id FROM assets WHERE asset_id = ?", (asset_id,)
        ).fetchone()
        return _entry_view(*row) if row else None

    async def store_event(self, event: dict) -> None:
        id_data = event["content"]["idData"]
        self.storage.execute("""
            INSERT OR IGNORE INTO events
            (event_id, asset_id, created_by, timestamp, access_level, document)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            event["eventId"], id_data["assetId"], id_data["createdBy"],
            id_data["timestamp"], id_data["accessLevel"], canonical_json_str(event)
        ))

    async def get_event(self, event_id: str, access_level: int) -> Optional[dict]:
        row = self.storage.execute("""
            SELECT document, bundle_id FROM events
            WHERE event_id = ? AND access_level <= ?
        """, (event_id, access_level)).fetchone()
        return _entry_view(*row) if row else None

    async def find_events(self, params: Dict[str, Any], access_level: int) -> List[dict]:
        clauses = ["access_level <= ?"]
        values: List[Any] = [access_level]
        for key, column, op in (
            ("assetId", "asset_id", "="),
            ("createdBy", "created_by", "="),
            ("fromTimestamp", "timestamp", ">="),
            ("toTimestamp", "timestamp", "<="),
        ):
            if key in params:
                clauses.append(f"{column} {op} ?")
                values.append(params[key])

        per_page = params.get("perPage", DEFAULT_PAGE_SIZE)
        values.extend([per_page, params.get("page", 0) * per_page])

        cursor = self.storage.execute(f"""
            SELECT document, bundle_id FROM events
            WHERE {" AND ".join(clauses)}
            ORDER BY timestamp DESC, event_id
            LIMIT ? OFFSET ?
        """, tuple(values))
        return [_entry_view(doc, bid) for doc, bid in cursor.fetchall()]

    async def begin_bundle(self, stub_id: str) -> BundleClaim:
        with self.storage.transaction() as conn:
            for table in ("assets", "events"):
                conn.execute(f"""
                    UPDATE {table} SET bundle_stub = ?
                    WHERE bundle_id IS NULL AND (bundle_stub IS NULL OR bundle_stub = ?)
                """, (stub_id, stub_id))
            assets = conn.execute("""
                SELECT document, bundle_id FROM assets
                WHERE bundle_stub = ? AND bundle_id IS NULL ORDER BY timestamp, asset_id
            """, (stub_id,)).fetchall()
            events = conn.execute("""
                SELECT document, bundle_id FROM events
                WHERE bundle_stub = ? AND bundle_id IS NULL ORDER BY timestamp, event_id
            """, (stub_id,)).fetchall()

        logger.debug("Claimed %d assets and %d events under %s", len(assets), len(events), stub_id)
        return BundleClaim(
            stub_id=stub_id,
            assets=[_entry_view(*row) for row in assets],
            events=[_entry_view(*row) for row in events],
        )

    async def cancel_bundle(self, stub_id: str) -> int:
        released = 0
        with self.storage.transaction() as conn:
            for table in ("assets", "events"):
                cursor = conn.execute(f"""
                    UPDATE {table} SET bundle_stub = NULL
                    WHERE bundle_stub = ? AND bundle_id IS NULL
                """, (stub_id,))
                released += cursor.rowcount
        return released

    async def store_bundle(self, bundle: dict, stub_id: Optional[str] = None) -> None:
        id_data = bundle["content"]["idData"]
        self.storage.execute("""
            INSERT OR IGNORE INTO bundles
            (bundle_id, created_by, timestamp, entry_count, document, bundle_stub)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            bundle["bundleId"], id_data["createdBy"], id_data["timestamp"],
            len(bundle["content"]["entries"]), canonical_json_str(bundle), stub_id
        ))

    async def end_bundle(self, stub_id: str, bundle_id: str) -> None:
        with self.storage.transaction() as conn:
            for table in ("assets", "events"):
                conn.execute(f"""
                    UPDATE {table} SET bundle_id = ?
                    WHERE bundle_stub = ? AND bundle_id IS NULL
                """, (bundle_id, stub_id))

    async def get_bundle(self, bundle_id: str) -> Optional[dict]:
        row = self.storage.execute(
            "SELECT document, proof_block FROM bundles WHERE bundle_id = ?", (bundle_id,)
        ).fetchone()
        return _bundle_view(*row) if row else None

    async def get_bundle_for_stub(self, stub_id: str) -> Optional[dict]:
        row = self.storage.execute(
            "SELECT document, proof_block FROM bundles WHERE bundle_stub = ? LIMIT 1", (stub_id,)
        ).fetchone()
        return _bundle_view(*row) if row else None

    async def store_bundle_proof_block(self, bundle_id: str, block_number: int) -> None:
        cursor = self.storage.execute(
            "UPDATE bundles SET proof_block = ? WHERE bundle_id = ?", (block_number, bundle_id)
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"No bundle with id = {bundle_id} found")


class SQLiteAccountRepository(AccountRepository):

    def __init__(self, storage: SQLiteStorage):
        self.storage = storage

    async def count(self) -> int:
        return self.storage.execute("SELECT COUNT(*) FROM accounts").fetchone()[0]

    async def get(self, address: str) -> Optional[Account]:
        row = self.storage.execute("""
            SELECT address, permissions, access_level, registered_by
            FROM accounts WHERE address = ?
        """, (address,)).fetchone()
        if row is None:
            return None
        addr, permissions, access_level, registered_by = row
        return Account(
            address=addr,
            permissions=json.loads(permissions),
            access_level=access_level,
            registered_by=registered_by,
        )

    async def store(self, account: Account) -> None:
        try:
            self.storage.execute("""
                INSERT INTO accounts (address, permissions, access_level, registered_by)
                VALUES (?, ?, ?, ?)
            """, (
                account.address, json.dumps(list(account.permissions)),
                account.access_level, account.registered_by
            ))
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Account {account.address} is already registered") from e

    async def update(self, address: str, changes: Dict[str, Any]) -> Account:
        assignments = []
        values: List[Any] = []
        if "permissions" in changes:
            assignments.append("permissions = ?")
            values.append(json.dumps(list(changes["permissions"])))
        if "accessLevel" in changes:
            assignments.append("access_level = ?")
            values.append(changes["accessLevel"])

        if assignments:
            cursor = self.storage.execute(
                f"UPDATE accounts SET {', '.join(assignments)} WHERE address = ?",
                tuple(values) + (address,),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Account {address} not found.")

        account = await self.get(address)
        if account is None:
            raise NotFoundError(f"Account {address} not found.")
        return account


class SQLiteProofRepository(ProofRepository):
    """
    Local stand-in for the ledger: assigns increasing block numbers.
    An already anchored bundle id gets its original block back.
    """

    def __init__(self, storage: SQLiteStorage):
        self.storage = storage

    async def upload_proof(self, bundle_id: str) -> ProofReceipt:
        with self.storage.transaction() as conn:
            row = conn.execute(
                "SELECT block_number FROM proofs WHERE bundle_id = ?", (bundle_id,)
            ).fetchone()
            if row is None:
                block_number = conn.execute(
                    "SELECT COALESCE(MAX(block_number), 0) + 1 FROM proofs"
                ).fetchone()[0]
                conn.execute(
                    "INSERT INTO proofs (bundle_id, block_number) VALUES (?, ?)",
                    (bundle_id, block_number),
                )
            else:
                block_number = row[0]
        return ProofReceipt(bundle_id=bundle_id, block_number=block_number)
