"""Key commands: generate a keypair, print a key identity."""

from pathlib import Path

import typer

from token_relay.cli._app import app
from token_relay.cli._common import setup_logging
from token_relay.cli._console import output_result, output_value, print_err, print_ok
from token_relay.crypto import (
    DEFAULT_RSA_KEY_BITS,
    CryptoError,
    compute_key_identity,
    load_public_key,
    write_keypair,
)

keys_app = typer.Typer(
    no_args_is_help=True,
    help="Manage the decryptor's RSA keypair.",
)
app.add_typer(keys_app, name="keys")


@keys_app.command("generate", help="Generate an RSA keypair as PEM files.")
def keys_generate(
    ctx: typer.Context,
    out_dir: Path = typer.Option(Path("keys"), "--out-dir", help="Directory for the PEM files"),
    bits: int = typer.Option(DEFAULT_RSA_KEY_BITS, "--bits", help="RSA modulus size (min 2048)"),
):
    """Generate private_key.pem (mode 0600) and public_key.pem."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    try:
        private_path, public_path = write_keypair(out_dir, bits=bits)
    except FileExistsError:
        print_err(f"Refusing to overwrite existing key in {out_dir}")
        raise SystemExit(1)
    except CryptoError as e:
        print_err(str(e))
        raise SystemExit(1)

    identity = compute_key_identity(load_public_key(public_path))
    if ctx.obj["json"]:
        output_result(
            {
                "private_key": str(private_path),
                "public_key": str(public_path),
                "bits": bits,
                "key_identity": identity,
            },
            ctx=ctx,
        )
        return

    print_ok(f"Private key: {private_path}")
    print_ok(f"Public key:  {public_path}")
    print_ok(f"Key identity: {identity}")


@keys_app.command("identity", help="Print the key identity of a public key.")
def keys_identity(
    ctx: typer.Context,
    public_key: Path = typer.Option(..., "--public-key", help="Public key PEM file"),
):
    """Print the SHA-256 fingerprint used to namespace stored records."""
    try:
        identity = compute_key_identity(load_public_key(public_key))
    except CryptoError as e:
        print_err(str(e))
        raise SystemExit(1)

    if ctx.obj["json"]:
        output_result({"public_key": str(public_key), "key_identity": identity}, ctx=ctx)
    else:
        output_value(identity)
