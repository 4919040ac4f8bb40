"""Root Typer application: the token-relay command and its global options."""

from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="token-relay",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug-level logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Warnings and errors only"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON to stdout"),
    env_file: Optional[Path] = typer.Option(
        None,
        "--env-file",
        help="Read TOKEN_RELAY_* settings from this file instead of the nearest .env",
    ),
):
    """Relay encrypted push tokens without exposing them to the relay.

    The [bold]decryptor[/bold] holds the private key and delivers
    notifications; the [bold]relay[/bold] forwards envelopes and keeps only
    opaque ids.
    """
    if verbose and quiet:
        raise typer.BadParameter("--verbose and --quiet are mutually exclusive")
    ctx.ensure_object(dict)
    ctx.obj.update(verbose=verbose, quiet=quiet, json=json_output, env_file=env_file)
