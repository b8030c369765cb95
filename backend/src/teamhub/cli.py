"""Command-line interface for TeamHub."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from teamhub.errors import NotFoundError
from teamhub.logging_config import configure_logging, get_logger
from teamhub.payments.ledger import WebhookEventLedger
from teamhub.settings import settings
from teamhub.storage.db import Database
from teamhub.teams.models import OPEN_MEMBER_STATUSES
from teamhub.teams.repository import TeamRepository

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="teamhub",
    help="TeamHub - team subscription entitlement",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _database(database_url: str | None) -> Database:
    return Database(database_url or settings.database_url)


DatabaseOption = Annotated[
    str | None,
    typer.Option("--database-url", help="Override DATABASE_URL"),
]


@app.command("init")
def init_database(database_url: DatabaseOption = None) -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    _database(database_url).create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("prune-webhook-events")
def prune_webhook_events(
    days: Annotated[int | None, typer.Option("--days", "-d", help="Retention in days")] = None,
    database_url: DatabaseOption = None,
) -> None:
    """Delete idempotency ledger entries older than the retention window."""
    retention = days if days is not None else settings.webhook_event_retention_days
    deleted = WebhookEventLedger(_database(database_url)).prune(retention)
    console.print(f"[bold green]✓[/bold green] Pruned {deleted} webhook events older than {retention} days")


@app.command("team-show")
def show_team(
    team_id: Annotated[str, typer.Argument(help="Team ID")],
    database_url: DatabaseOption = None,
) -> None:
    """Show a team and its open memberships."""
    repository = TeamRepository(_database(database_url))
    team = repository.get_team(team_id)
    if not team:
        console.print(f"[bold red]Error:[/bold red] Team {team_id} not found")
        raise typer.Exit(1)

    console.print(f"[bold]{team.name}[/bold] ({team.id})")
    console.print(f"  Owner:        {team.owner_name} <{team.owner_email}>")
    console.print(f"  Status:       {team.subscription_status} ({team.subscription_plan})")
    console.print(f"  Ends:         {team.subscription_end_date}")
    console.print(f"  Member count: {team.member_count}")

    table = Table(title="Members")
    table.add_column("ID", style="cyan")
    table.add_column("Email")
    table.add_column("Status")
    table.add_column("Access")

    for member in repository.list_members(team_id, OPEN_MEMBER_STATUSES):
        table.add_row(
            member.id,
            member.email,
            member.status,
            "yes" if member.has_subscription_access else "no",
        )

    console.print(table)


@app.command("delete-team")
def delete_team(
    team_id: Annotated[str, typer.Argument(help="Team ID to delete")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    database_url: DatabaseOption = None,
) -> None:
    """Delete a team with its members and clear the owner's subscription mirror.

    Intended for test environments only.
    """
    if settings.is_production:
        console.print("[bold red]Error:[/bold red] delete-team is disabled in production")
        raise typer.Exit(1)

    if not yes:
        typer.confirm(f"Delete team {team_id} and all its members?", abort=True)

    try:
        TeamRepository(_database(database_url)).delete_team(team_id)
    except NotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)

    logger.warning("team_deleted", team_id=team_id)
    console.print(f"[bold green]✓[/bold green] Team {team_id} deleted")


if __name__ == "__main__":
    app()
