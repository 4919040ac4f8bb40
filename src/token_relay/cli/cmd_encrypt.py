"""Encrypt command: build a client envelope, for testing clients and demos."""

import base64
from pathlib import Path

import typer

from token_relay.cli._app import app
from token_relay.cli._console import output_result, output_value, print_err
from token_relay.crypto import (
    MAX_TOKEN_LENGTH,
    CryptoError,
    HybridCipher,
    WrapPadding,
    compute_key_identity,
    load_public_key,
)


@app.command("encrypt", help="Encrypt a device token for the decryptor's public key.")
def encrypt(
    ctx: typer.Context,
    public_key: Path = typer.Option(..., "--public-key", help="Decryptor public key PEM file"),
    token: str = typer.Option(..., "--token", help="Plaintext device token"),
    wrap_padding: WrapPadding = typer.Option(
        WrapPadding.OAEP,
        "--padding",
        case_sensitive=False,
        help="RSA padding for the AES key; must match the decryptor's setting",
    ),
):
    """Print the base64 envelope a client would send to /register."""
    raw = token.encode("utf-8")
    if not 1 <= len(raw) <= MAX_TOKEN_LENGTH:
        print_err(f"Token must be 1 to {MAX_TOKEN_LENGTH} bytes")
        raise SystemExit(1)

    try:
        key = load_public_key(public_key)
    except CryptoError as e:
        print_err(str(e))
        raise SystemExit(1)

    envelope = HybridCipher.encode(raw, key, wrap_padding)
    payload = base64.b64encode(envelope).decode("ascii")

    if ctx.obj["json"]:
        output_result(
            {"payload": payload, "key_identity": compute_key_identity(key)},
            ctx=ctx,
        )
    else:
        output_value(payload)
