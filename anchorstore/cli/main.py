# anchorstore/cli/main.py
"""
CLI for operating an anchorstore node: genesis, bundle finalisation, inspection and verification.
"""

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from anchorstore.config import Settings
from anchorstore.core.errors import AnchorStoreError
from anchorstore.engine.data_model_engine import build_engine
from anchorstore.storage.sqlite import SQLiteStorage
from anchorstore.verify.verifier import BundleVerifier

app = typer.Typer(
    name="anchorstore",
    help="Operate a permissioned, ledger-anchored asset/event store",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def load_settings(ctx: typer.Context) -> Settings:
    try:
        settings = Settings.from_env()
    except AnchorStoreError as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        raise typer.Exit(1)
    return settings.with_overrides(**(ctx.obj or {}))


def get_db_path(settings: Settings, db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. ANCHORSTORE_DB_PATH environment variable
    3. Default: ~/.anchorstore/anchorstore.db
    """
    path = db_flag.resolve() if db_flag else settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def open_storage(db_path: Path, must_exist: bool = True) -> SQLiteStorage:
    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Create the genesis admin: anchorstore init-admin")
        console.print("  • Set env var: export ANCHORSTORE_DB_PATH=/path/to/your.db")
        console.print("  • Or use --db: anchorstore status --db /custom/path.db")
        raise typer.Exit(1)
    try:
        return SQLiteStorage(db_path)
    except Exception as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (overrides ANCHORSTORE_LOG_LEVEL)",
    ),
):
    """Manage an anchorstore node."""
    ctx.obj = {"log_level": log_level.upper() if log_level else None}
    settings = load_settings(ctx)
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command("init-admin")
def init_admin(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Create the single genesis admin account and print its key pair."""
    settings = load_settings(ctx)
    with open_storage(get_db_path(settings, db), must_exist=False) as storage:
        engine = build_engine(storage, settings)
        try:
            key_pair = asyncio.run(engine.create_admin_account())
        except AnchorStoreError as e:
            console.print(f"[red]{e}[/]")
            raise typer.Exit(1)

    console.print("[green]✓ Admin account created[/]")
    console.print(f"  address: {key_pair.address}")
    console.print(f"  secret:  {key_pair.secret}")
    console.print("[yellow]Store the secret now, it is not kept anywhere.[/]")


@app.command()
def status(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show record counts: accounts, entries, bundles and anchoring backlog."""
    settings = load_settings(ctx)
    with open_storage(get_db_path(settings, db)) as storage:
        try:
            counts = storage.counts()
        except AnchorStoreError as e:
            console.print(f"[red]Failed to read database: {e}[/]")
            raise typer.Exit(1)

    table = Table(title="Store Status")
    table.add_column("Records")
    table.add_column("Count", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)


@app.command()
def finalise(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    stub: Optional[str] = typer.Option(None, "--stub", help="Claim id (reuse it to retry an interrupted run)"),
    node_key: Optional[str] = typer.Option(
        None, "--node-key", help="Node signing secret (overrides ANCHORSTORE_NODE_PRIVATE_KEY)"
    ),
):
    """Bundle every unbundled entry, sign it with the node key and anchor it."""
    settings = load_settings(ctx).with_overrides(node_private_key=node_key)
    stub_id = stub or f"stub-{uuid.uuid4()}"

    with open_storage(get_db_path(settings, db)) as storage:
        engine = build_engine(storage, settings)
        try:
            bundle = asyncio.run(engine.finalise_bundle(stub_id))
        except AnchorStoreError as e:
            console.print(f"[red]Finalisation of {stub_id} failed: {e}[/]")
            raise typer.Exit(1)

    console.print(f"[green]✓ Bundle {bundle['bundleId']}[/]")
    console.print(f"  entries: {len(bundle['content']['entries'])}")
    console.print(f"  block:   {bundle['metadata']['proofBlock']}")


@app.command()
def bundles(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent bundles to show"),
):
    """List the most recent bundles with their anchor blocks."""
    settings = load_settings(ctx)
    with open_storage(get_db_path(settings, db)) as storage:
        rows = storage.list_bundles(limit=limit)

    if not rows:
        console.print("[yellow]No bundles found in database.[/]")
        return

    table = Table(title="Bundles")
    table.add_column("Bundle ID")
    table.add_column("Entries", justify="right")
    table.add_column("Timestamp")
    table.add_column("Block")
    for row in rows:
        block = str(row["proofBlock"]) if row["proofBlock"] is not None else "—"
        table.add_row(row["bundleId"], str(row["entryCount"]), str(row["timestamp"]), block)
    console.print(table)


@app.command()
def verify(
    ctx: typer.Context,
    bundle_id: str = typer.Argument(..., help="Bundle ID to verify"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Verify a stored bundle (hashes + signatures of the bundle and all entries)."""
    settings = load_settings(ctx)
    with open_storage(get_db_path(settings, db)) as storage:
        result = BundleVerifier().verify_from_storage(bundle_id, storage)

    if result.is_valid:
        console.print(f"[green]✓ Bundle '{bundle_id}' is valid[/]")
        console.print(f"  {result.message} ({result.entry_count} entries)")
    else:
        console.print(f"[red]✗ Verification failed for bundle '{bundle_id}'[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def export(
    ctx: typer.Context,
    bundle_id: str = typer.Argument(..., help="Bundle ID to export"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <bundle_id>.json)"),
):
    """Export a bundle as JSON, ready for publication."""
    settings = load_settings(ctx)
    with open_storage(get_db_path(settings, db)) as storage:
        engine = build_engine(storage, settings)
        try:
            bundle = asyncio.run(engine.get_bundle(bundle_id))
        except AnchorStoreError as e:
            console.print(f"[red]{e}[/]")
            raise typer.Exit(1)

    out_path = output or Path(f"{bundle_id}.json")
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(bundle, f, indent=2, sort_keys=True)
        f.write("\n")

    console.print(f"[green]Exported bundle with {len(bundle['content']['entries'])} entries to {out_path}[/]")


if __name__ == "__main__":
    app()
