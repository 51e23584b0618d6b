"""CLI commands using Typer."""

import typer

from usertokens.cli.keys import app as keys_app
from usertokens.cli.tokens import app as tokens_app
from usertokens.logging import setup_logging

app = typer.Typer(name="usertokens", help="User token CLI")

# Register sub-apps
app.add_typer(keys_app, name="keys")
app.add_typer(tokens_app, name="tokens")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
):
    """Manage user tokens."""
    setup_logging("DEBUG" if verbose else None)


@app.command()
def version():
    """Show version information."""
    from usertokens import __version__

    typer.echo(f"usertokens v{__version__}")


if __name__ == "__main__":
    app()
