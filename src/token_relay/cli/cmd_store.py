"""Store commands: eviction pass and status against the configured store."""

from typing import Optional

import typer

from token_relay.cli._app import app
from token_relay.cli._common import ensure_initialized, setup_logging
from token_relay.cli._console import console, output_result, print_err, print_ok
from token_relay.config import DecryptorConfig
from token_relay.crypto import KeyLoadError, compute_key_identity, load_private_key
from token_relay.evictor import Evictor
from token_relay.storage import DurableStore, StorageError, StorageFactory


def _load_config() -> DecryptorConfig:
    try:
        return DecryptorConfig.from_env()
    except ValueError as e:
        print_err(f"Invalid configuration: {e}")
        raise SystemExit(1)


def _open_store(config: DecryptorConfig) -> DurableStore:
    try:
        key = load_private_key(config.private_key_path)
        return StorageFactory.create(config, compute_key_identity(key))
    except (KeyLoadError, StorageError, ValueError) as e:
        print_err(str(e))
        raise SystemExit(1)


@app.command("evict", help="Run one eviction pass against the configured store.")
def evict(
    ctx: typer.Context,
    retention_days: Optional[float] = typer.Option(
        None, "--retention-days", help="Override TOKEN_RELAY_RETENTION_DAYS"
    ),
):
    """Delete records unused for longer than the retention window."""
    ensure_initialized(ctx)
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    config = _load_config()
    if retention_days is not None:
        config = config.model_copy(update={"retention_days": retention_days})
    if config.retention_days <= 0:
        print_err("Retention must be greater than zero")
        raise SystemExit(1)

    store = _open_store(config)
    result = Evictor(store, retention=config.retention).run_once()

    if ctx.obj["json"]:
        output_result(
            {"scanned": result.scanned, "deleted": result.deleted, "failed": result.failed},
            ctx=ctx,
        )
        return

    print_ok(
        f"Scanned {result.scanned}, deleted {result.deleted}, failed {result.failed} "
        f"(retention {config.retention_days:g} days)"
    )
    if result.failed:
        raise SystemExit(1)


@app.command("status", help="Show record count and storage backend.")
def status(ctx: typer.Context):
    """Report the configured store without starting a server."""
    ensure_initialized(ctx)
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    store = _open_store(_load_config())
    try:
        data = {
            "registered_tokens": store.count(),
            "storage_backend": store.backend.value,
            "storage_description": store.describe(),
        }
    except StorageError as e:
        print_err(str(e))
        raise SystemExit(1)

    if ctx.obj["json"]:
        output_result(data, ctx=ctx)
        return

    console.print(f"\nStorage: {data['storage_description']} ({data['storage_backend']})")
    console.print(f"Registered tokens: {data['registered_tokens']}\n")
