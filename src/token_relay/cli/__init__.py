"""CLI package: Typer-based command-line interface.

Usage:
    token-relay --help
    python -m token_relay.cli keys --help
"""

from token_relay.cli._app import app

# Register command modules (side-effect imports)
import token_relay.cli.cmd_keys  # noqa: F401
import token_relay.cli.cmd_encrypt  # noqa: F401
import token_relay.cli.cmd_serve  # noqa: F401
import token_relay.cli.cmd_store  # noqa: F401

__all__ = ["app"]
