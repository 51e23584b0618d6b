"""Vault key commands."""

import typer

from usertokens.tokens.vault import generate_key

app = typer.Typer(help="Vault key commands")


@app.command("generate")
def generate():
    """Print a new vault key.

    Prepend it to VAULT_KEYS to make it the primary key; keep older keys
    listed until tokens encrypted with them have expired.
    """
    typer.echo(generate_key())
