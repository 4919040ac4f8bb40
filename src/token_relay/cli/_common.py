"""Shared CLI utilities."""

import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from token_relay.cli._console import print_err
from token_relay.startup import ensure_initialized as _ensure_initialized
from token_relay.startup import load_env_file


def ensure_initialized(ctx: Optional[typer.Context] = None) -> None:
    """Load settings before any configuration is read.

    Uses the --env-file global option when given, else the nearest .env.
    """
    env_file = ctx.obj.get("env_file") if ctx is not None and ctx.obj else None
    if env_file is None:
        _ensure_initialized()
        return
    try:
        load_env_file(env_file)
    except FileNotFoundError as e:
        print_err(str(e))
        raise SystemExit(1)


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging with Rich handler."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = RichHandler(
        console=None,  # Use default stderr
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Suppress noisy third-party loggers
    for name in ("httpx", "httpcore", "botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
