"""Serve commands: run the decryptor or relay HTTP service with uvicorn."""

import typer

from token_relay.cli._app import app
from token_relay.cli._common import ensure_initialized, setup_logging
from token_relay.cli._console import console, print_err

serve_app = typer.Typer(
    no_args_is_help=True,
    help="Run an HTTP service (decryptor or relay).",
)
app.add_typer(serve_app, name="serve")


def _run(application, host: str, port: int) -> None:
    import uvicorn

    console.print(f"[green]✓[/green] Starting server at http://{host}:{port}")
    console.print(f"[green]✓[/green] API docs: http://{host}:{port}/docs")
    uvicorn.run(application, host=host, port=port, log_config=None)


@serve_app.command("decryptor", help="Run the trusted decryptor service.")
def serve_decryptor(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8080, "--port", help="Port to listen on"),
):
    """Load the private key, open the store and serve the decryptor API."""
    ensure_initialized(ctx)
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from token_relay.api.main import create_decryptor_app
    from token_relay.config import DecryptorConfig
    from token_relay.context import build_decryptor_context
    from token_relay.crypto import KeyLoadError
    from token_relay.storage import StorageError

    try:
        context = build_decryptor_context(DecryptorConfig.from_env())
    except (KeyLoadError, StorageError, ValueError) as e:
        print_err(f"Cannot start decryptor: {e}")
        raise SystemExit(1)

    _run(create_decryptor_app(context), host, port)


@serve_app.command("relay", help="Run the untrusted relay service.")
def serve_relay(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8081, "--port", help="Port to listen on"),
):
    """Serve the relay API, forwarding to TOKEN_RELAY_DECRYPTOR_URL."""
    ensure_initialized(ctx)
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from token_relay.api.main import create_relay_app
    from token_relay.config import RelayConfig
    from token_relay.context import build_relay_context
    from token_relay.crypto import KeyLoadError
    from token_relay.relay import RelayError

    try:
        context = build_relay_context(RelayConfig.from_env())
    except (KeyLoadError, RelayError, ValueError) as e:
        print_err(f"Cannot start relay: {e}")
        raise SystemExit(1)

    _run(create_relay_app(context), host, port)
