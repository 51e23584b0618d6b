"""Token inspection commands."""

import asyncio
from datetime import UTC, datetime, timedelta

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.dialects import postgresql

from usertokens.database import get_session_context
from usertokens.models import User
from usertokens.store import TokenStore, compile_predicate
from usertokens.tokens import Encoding, TokenContext, TokenError, UnknownContext, resolve_policy
from usertokens.tokens.codec import decode_from_transmission
from usertokens.tokens.contexts import PARAMETERIZED
from usertokens.tokens.predicates import records_for_user, verify

console = Console()
app = typer.Typer(help="Token policy commands")


@app.command("policies")
def policies():
    """List token contexts and their policies."""
    table = Table(title="Token Policies")
    table.add_column("Context", style="cyan", no_wrap=True)
    table.add_column("Encoding", style="green")
    table.add_column("Days", justify="right")
    table.add_column("Current", justify="right", style="dim")
    table.add_column("Email Match", style="magenta")

    for context in TokenContext:
        name = f"{context.value}:*" if context in PARAMETERIZED else context.value
        policy = resolve_policy(name)
        table.add_row(
            name,
            policy.encoding.value,
            str(policy.validity_days),
            str(policy.current_days) if policy.current_days is not None else "-",
            "[green]Yes[/green]" if policy.requires_email_match else "No",
        )

    console.print(table)


@app.command("explain")
def explain(
    token: str = typer.Argument(..., help="Token text; base64 for session tokens"),
    context: str = typer.Argument(..., help="Token context, e.g. confirm or change:new@example.com"),
    sql: bool = typer.Option(True, "--sql/--no-sql", help="Also print the compiled SQL"),
):
    """Show the predicate a presented token must satisfy."""
    try:
        presented: bytes | str = token
        if resolve_policy(context).encoding == Encoding.RAW:
            presented = decode_from_transmission(token)
        predicate = verify(presented, context)
    except TokenError as e:
        console.print(str(e), style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1) from None

    console.print(f"[bold]Returns:[/bold] {predicate.returns.value}")
    for constraint in predicate.constraints:
        console.print(f"  - {constraint.describe()}", markup=False, soft_wrap=True)

    if sql:
        stmt = compile_predicate(predicate).compile(dialect=postgresql.dialect())
        console.print(f"\n{stmt}", style="dim", markup=False, soft_wrap=True)


@app.command("list")
def list_tokens(
    user_id: str = typer.Argument(..., help="User ID"),
    context: list[str] | None = typer.Option(None, "--context", "-c", help="Only these contexts"),
):
    """List a user's tokens."""

    async def _list():
        async with get_session_context() as session:
            user = await session.get(User, user_id)
            if not user:
                console.print(f"User not found: {user_id}", style="red", markup=False)
                raise typer.Exit(1)

            records = await TokenStore(session).fetch_all(records_for_user(user, context or "all"))

            table = Table(title=f"Tokens for {user.email}")
            table.add_column("ID", style="cyan", no_wrap=True)
            table.add_column("Context", style="green")
            table.add_column("Sent To")
            table.add_column("Created", style="dim")
            table.add_column("Status", no_wrap=True)

            now = datetime.now(UTC)
            for record in records:
                expires = record.created_at + timedelta(days=resolve_policy(record.context).validity_days)
                status = "[green]valid[/green]" if expires > now else "[red]expired[/red]"
                table.add_row(
                    record.id,
                    record.context,
                    record.sent_to or "-",
                    record.created_at.strftime("%Y-%m-%d"),
                    status,
                )

            console.print(table)

    try:
        asyncio.run(_list())
    except UnknownContext as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(1) from None
