"""Main CLI for tkxr."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import services
from .config import get_context_help_message, resolve_context
from .errors import TkxrError
from .logging import setup_logging
from .models import SPRINT_STATUSES, TICKET_STATUSES, TICKET_TYPES
from .output import OUTPUT_FORMATS, format_error, format_response, render_cli
from .store import FileStorage

app = typer.Typer(
    name="tkxr",
    help="tkxr - In-repo ticket management system",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    "todo": "bright_black",
    "progress": "yellow",
    "done": "green",
    "planning": "yellow",
    "active": "blue",
    "completed": "green",
}
PRIORITY_STYLES = {
    "low": "blue",
    "medium": "yellow",
    "high": "magenta",
    "critical": "red",
}
TABLE_FORMATS = ("table", "json", "yaml")
EXPORT_FORMATS = ("yaml", "json")


def get_storage(path: Optional[Path] = None) -> FileStorage:
    """Resolve the store for the current (or given) directory."""
    context = resolve_context(path)
    if context.data_dir.exists():
        setup_logging(context.data_dir)
    return context.create_storage()


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn tkxr errors into a one-line diagnostic and exit code 1."""
    try:
        yield
    except TkxrError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _check(result: dict) -> dict:
    """Exit with the service's message when it returned an error."""
    if "error" in result:
        console.print(f"[red]Error:[/red] {escape(result['message'])}")
        raise typer.Exit(1)
    return result


def _require_format(output_format: str, allowed: tuple) -> None:
    error = format_error(output_format, allowed)
    if error:
        _check(error)


def _styled(value: Optional[str], styles: dict) -> str:
    if not value:
        return ""
    return f"[{styles.get(value, 'white')}]{value}[/]"


def _day(iso: Optional[str]) -> str:
    return iso[:10] if iso else ""


def _print_structured(payload: dict, output_format: str) -> None:
    text = render_cli(format_response(payload, output_format))
    console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


# ============================================================================
# Context
# ============================================================================


@app.command("context")
def show_context(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path to check context for"),
):
    """Show where the ticket store is and where change notifications go."""
    console.print(get_context_help_message(resolve_context(path)), markup=False)


# ============================================================================
# Ticket Commands
# ============================================================================


@app.command("create")
def create_entity(
    entity_type: str = typer.Argument(..., help="task, bug, sprint or user"),
    title: str = typer.Argument(..., help="Ticket title, sprint name or username"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    assignee: Optional[str] = typer.Option(None, "--assignee", help="Assignee user ID or username"),
    sprint: Optional[str] = typer.Option(None, "--sprint", help="Sprint ID"),
    priority: Optional[str] = typer.Option(None, "--priority", help="low, medium, high or critical"),
    estimate: Optional[float] = typer.Option(None, "--estimate", help="Story points or hours"),
    labels: Optional[list[str]] = typer.Option(None, "--label", "-l", help="Label (repeatable)"),
    goal: Optional[str] = typer.Option(None, "--goal", help="Sprint goal"),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="User display name"),
    email: Optional[str] = typer.Option(None, "--email", help="User email"),
):
    """Create a ticket (task, bug), a sprint or a user.

    \b
    Examples:
      tkxr create task "Fix login bug" --priority high
      tkxr new bug "Dashboard crash" --assignee alice
      tkxr create sprint "Sprint 1" --goal "Ship auth"
      tkxr create user johndoe --display-name "John Doe"
    """
    with cli_errors():
        storage = get_storage()
        if entity_type in TICKET_TYPES:
            if estimate is not None and estimate.is_integer():
                estimate = int(estimate)
            result = _check(services.create_ticket(
                storage,
                entity_type,
                title,
                description=description,
                assignee=assignee,
                sprint=sprint,
                priority=priority,
                estimate=estimate,
                labels=labels,
            ))
            ticket = result["ticket"]
            console.print(f"[green]✓[/green] Created {entity_type}: [blue]{ticket['id']}[/blue]")
            console.print(f"  Title: {escape(ticket['title'])}")
            console.print(f"  Status: {_styled(ticket['status'], STATUS_STYLES)}")
            if ticket.get("assignee"):
                console.print(f"  Assignee: {ticket['assignee']}")
            if ticket.get("sprint"):
                console.print(f"  Sprint: {ticket['sprint']}")
            if ticket.get("priority"):
                console.print(f"  Priority: {_styled(ticket['priority'], PRIORITY_STYLES)}")
        elif entity_type == "sprint":
            result = services.create_sprint(storage, title, description=description, goal=goal)
            sprint_data = result["sprint"]
            console.print(f"[green]✓[/green] Created sprint: [blue]{sprint_data['id']}[/blue]")
            console.print(f"  Name: {escape(sprint_data['name'])}")
            console.print(f"  Status: {_styled(sprint_data['status'], STATUS_STYLES)}")
        elif entity_type == "user":
            result = services.create_user(storage, title, display_name or description or title, email=email)
            user = result["user"]
            console.print(f"[green]✓[/green] Created user: [blue]{user['id']}[/blue]")
            console.print(f"  Username: {escape(user['username'])}")
            console.print(f"  Display Name: {escape(user['displayName'])}")
        else:
            console.print(f"[red]Error:[/red] Unknown entity type \"{escape(entity_type)}\"")
            console.print("Valid types: task, bug, sprint, user")
            raise typer.Exit(1)


app.command("new", help="Alias for create")(create_entity)


@app.command("list")
def list_entities(
    entity_type: Optional[str] = typer.Argument(None, help="tasks, bugs, sprints or users (default: all tickets)"),
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status"),
    assignee: Optional[str] = typer.Option(None, "--assignee", help="Filter by assignee ID or username"),
    sprint: Optional[str] = typer.Option(None, "--sprint", help="Filter by sprint ID"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search title, description and ID"),
    sort_by: str = typer.Option("updated", "--sort-by", help="title, status, priority, created, updated"),
    order: str = typer.Option("desc", "--order", help="asc or desc"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show assignee and sprint names"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum tickets to show"),
    offset: int = typer.Option(0, "--offset", help="Skip first N tickets"),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|yaml)"),
):
    """List tickets (optionally one type), sprints or users."""
    _require_format(output_format, TABLE_FORMATS)
    if entity_type in ("sprint", "sprints"):
        list_sprints(status=status, archived=False, output_format=output_format)
        return
    if entity_type in ("user", "users"):
        list_users(output_format=output_format)
        return

    ticket_type = None
    if entity_type:
        ticket_type = entity_type[:-1] if entity_type.endswith("s") else entity_type
        if ticket_type not in TICKET_TYPES:
            console.print(f"[red]Error:[/red] Unknown type \"{escape(entity_type)}\"")
            raise typer.Exit(1)

    with cli_errors():
        storage = get_storage()
        result = services.list_tickets(
            storage,
            ticket_type=ticket_type,
            status=status,
            assignee=assignee,
            sprint=sprint,
            search=search,
            sort_by=sort_by,
            order=order,
            limit=limit,
            offset=offset,
        )
        if output_format != "table":
            _print_structured(result, output_format)
            return

        tickets = result["tickets"]
        if not tickets:
            console.print(f"[yellow]No {entity_type or 'tickets'} found[/yellow]")
            return

        users = {u.id: u.display_name for u in storage.get_users()} if verbose else {}
        sprints = {s.id: s.name for s in storage.get_sprints()} if verbose else {}

        table = Table(title=f"Tickets ({result['summary']['total']})", show_lines=False)
        table.add_column("ID", style="blue", no_wrap=True)
        table.add_column("TYPE")
        table.add_column("STATUS")
        table.add_column("PRI")
        table.add_column("TITLE")
        if verbose:
            table.add_column("ASSIGNEE", style="dim")
            table.add_column("SPRINT", style="dim")

        for t in tickets:
            row = [
                t["id"],
                t["type"],
                _styled(t["status"], STATUS_STYLES),
                _styled(t["priority"], PRIORITY_STYLES),
                escape(t["title"]),
            ]
            if verbose:
                row.append(escape(users.get(t["assignee"], t["assignee"] or "")))
                row.append(escape(sprints.get(t["sprint"], t["sprint"] or "")))
            table.add_row(*row)
        console.print(table)

        pagination = result["pagination"]
        if pagination["has_more"]:
            console.print(f"[dim]More results: --offset {pagination['next_offset']}[/dim]")


@app.command("show")
def show_ticket(
    ticket_id: str = typer.Argument(..., help="Ticket ID"),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (text|json|yaml)"),
):
    """Show detailed ticket information."""
    _require_format(output_format, OUTPUT_FORMATS)
    with cli_errors():
        storage = get_storage()
        ticket = _check(services.get_ticket(storage, ticket_id))["ticket"]

    if output_format != "text":
        _print_structured(ticket, output_format)
        return

    icon = "📋" if ticket["type"] == "task" else "🐛"
    console.print()
    console.print(f"[bold]{icon} {escape(ticket['title'])}[/bold]")
    console.print("[dim]" + "─" * 50 + "[/dim]")
    console.print(f"[blue]ID:[/blue]        {ticket['id']}")
    console.print(f"[blue]Type:[/blue]      {ticket['type']}")
    console.print(f"[blue]Status:[/blue]    {_styled(ticket['status'], STATUS_STYLES)}")
    if ticket.get("priority"):
        console.print(f"[blue]Priority:[/blue]  {_styled(ticket['priority'], PRIORITY_STYLES)}")
    if ticket.get("assignee"):
        console.print(f"[blue]Assignee:[/blue]  {escape(ticket['assigneeName'])}")
    if ticket.get("sprint"):
        console.print(f"[blue]Sprint:[/blue]    {escape(ticket['sprintName'])}")
    if ticket.get("estimate") is not None:
        unit = "point" if ticket["estimate"] == 1 else "points"
        console.print(f"[blue]Estimate:[/blue]  {ticket['estimate']} {unit}")
    if ticket.get("labels"):
        console.print(f"[blue]Labels:[/blue]    {escape(', '.join(ticket['labels']))}")
    if ticket.get("description"):
        console.print()
        console.print("[blue]Description:[/blue]")
        console.print(escape(ticket["description"]))
    console.print()
    console.print(f"[dim]Created: {ticket['createdAt']}[/dim]")
    console.print(f"[dim]Updated: {ticket['updatedAt']}[/dim]")
    if ticket["comments"]:
        console.print(f"[dim]Comments: {len(ticket['comments'])} (tkxr comments {ticket['id']})[/dim]")
    console.print()


@app.command("delete")
def delete_entity(
    entity_id: str = typer.Argument(..., help="Ticket, sprint or user ID"),
    force: bool = typer.Option(False, "--force", help="Confirm deletion"),
):
    """Delete a ticket (with its comments), a sprint or a user."""
    with cli_errors():
        storage = get_storage()
        found = _check(services.find_entity(storage, entity_id))["entity"]
        console.print(f"[yellow]About to delete {found['kind']}: {entity_id}[/yellow]")
        if found["label"]:
            console.print(f"  {escape(found['label'])}")

        if not force:
            console.print("[red]Use --force to confirm deletion[/red]")
            return

        result = _check(services.delete_entity(storage, entity_id))

    if "comments_deleted" in result:
        console.print(f"[dim]  Deleted {result['comments_deleted']} associated comment(s)...[/dim]")
    console.print(f"[green]✓[/green] Deleted {found['kind']}: {entity_id}")


@app.command("status")
def update_status(
    ticket_id: str = typer.Argument(..., help="Ticket ID"),
    status: str = typer.Argument(..., help="todo, progress or done"),
):
    """Update ticket status."""
    if status not in TICKET_STATUSES:
        console.print(f"[red]Error:[/red] Invalid status \"{escape(status)}\"")
        console.print(f"Valid statuses: {', '.join(TICKET_STATUSES)}")
        raise typer.Exit(1)

    with cli_errors():
        storage = get_storage()
        ticket = _check(services.update_ticket_status(storage, ticket_id, status))["ticket"]

    console.print("[green]✓[/green] Updated ticket status")
    console.print(f"  ID: [blue]{ticket['id']}[/blue]")
    console.print(f"  Title: {escape(ticket['title'])}")
    console.print(f"  Status: {_styled(ticket['status'], STATUS_STYLES)}")
    console.print(f"  Updated: {ticket['updatedAt']}")


@app.command("comments")
def manage_comments(
    ticket_id: str = typer.Argument(..., help="Ticket ID"),
    add: bool = typer.Option(False, "--add", help="Add a comment instead of listing"),
    author: Optional[str] = typer.Option(None, "--author", help="Author user ID or username"),
    content: Optional[str] = typer.Option(None, "--content", help="Comment content"),
):
    """List comments for a ticket, or add one with --add."""
    with cli_errors():
        storage = get_storage()
        if add:
            if not author or not content:
                console.print("[red]Error:[/red] --author and --content are required when adding a comment")
                raise typer.Exit(1)
            comment = _check(services.add_comment(storage, ticket_id, author, content))["comment"]
            console.print("[green]✓[/green] Comment added successfully")
            console.print(f"[dim]  ID: {comment['id']}[/dim]")
            console.print(f"[dim]  Author: {escape(comment['authorName'])}[/dim]")
            return

        result = _check(services.list_comments(storage, ticket_id))

    if not result["comments"]:
        console.print(f"[yellow]No comments found for ticket '{ticket_id}'[/yellow]")
        return

    console.print(f"\n[bold]💬 Comments for ticket {ticket_id} ({result['count']})[/bold]\n")
    for comment in result["comments"]:
        console.print(f"[blue]📝 {comment['id']}[/blue]")
        console.print(f"[dim]   Author: {escape(comment['authorName'])}[/dim]")
        console.print(f"[dim]   Created: {comment['createdAt']}[/dim]")
        console.print(f"   {escape(comment['content'])}")
        console.print()


# ============================================================================
# User Commands
# ============================================================================


@app.command("users")
def list_users(
    output_format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|yaml)"),
):
    """List all users."""
    _require_format(output_format, TABLE_FORMATS)
    with cli_errors():
        storage = get_storage()
        result = services.list_users(storage)

    if output_format != "table":
        _print_structured(result, output_format)
        return
    if not result["users"]:
        console.print("[yellow]No users found.[/yellow]")
        return

    table = Table(title=f"Users ({len(result['users'])})")
    table.add_column("ID", style="blue", no_wrap=True)
    table.add_column("USERNAME", style="green")
    table.add_column("DISPLAY NAME")
    table.add_column("EMAIL", style="dim")
    table.add_column("CREATED", style="dim")
    for user in result["users"]:
        table.add_row(
            user["id"],
            escape(user["username"]),
            escape(user["displayName"]),
            escape(user.get("email", "")),
            _day(user["createdAt"]),
        )
    console.print(table)


user_app = typer.Typer(help="User management commands")
app.add_typer(user_app, name="user")


@user_app.command("create")
def user_create(
    username: str = typer.Argument(..., help="Unique handle"),
    display_name: str = typer.Argument(..., help="Display name"),
    email: Optional[str] = typer.Option(None, "--email", help="Email address"),
):
    """Create a new user."""
    with cli_errors():
        storage = get_storage()
        user = services.create_user(storage, username, display_name, email=email)["user"]

    console.print("[green]✓[/green] User created successfully!")
    console.print(f"[bold]{escape(user['displayName'])} (@{escape(user['username'])})[/bold]")
    console.print(f"[dim]  ID: {user['id']}[/dim]")
    if user.get("email"):
        console.print(f"[dim]  Email: {escape(user['email'])}[/dim]")


# ============================================================================
# Sprint Commands
# ============================================================================


@app.command("sprints")
def list_sprints(
    status: Optional[str] = typer.Option(None, "--status", help="planning, active or completed"),
    archived: bool = typer.Option(False, "--archived", "-a", help="Also list archived sprints"),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format (table|json|yaml)"),
):
    """List sprints, optionally with archived ones."""
    _require_format(output_format, TABLE_FORMATS)
    with cli_errors():
        storage = get_storage()
        result = services.list_sprints(storage, status=status, include_archived=archived)

    if output_format != "table":
        _print_structured(result, output_format)
        return

    sprints = result["sprints"]
    archived_ids = result.get("archived", [])
    if not sprints and not archived_ids:
        suffix = f' with status "{status}"' if status else ""
        console.print(f"[yellow]No sprints found{suffix}.[/yellow]")
        return

    if sprints:
        table = Table(title=f"Sprints ({len(sprints)})")
        table.add_column("ID", style="blue", no_wrap=True)
        table.add_column("STATUS")
        table.add_column("NAME")
        table.add_column("TICKETS", justify="right")
        table.add_column("GOAL", style="dim")
        table.add_column("DATES", style="dim")
        for s in sprints:
            dates = " → ".join(d for d in (_day(s.get("startDate")), _day(s.get("endDate"))) if d)
            table.add_row(
                s["id"],
                _styled(s["status"], STATUS_STYLES),
                escape(s["name"]),
                str(s["ticketCount"]),
                escape(s.get("goal", "")),
                dates,
            )
        console.print(table)

    if archived_ids:
        console.print(f"\n[bold blue]📁 Archived Sprints ({len(archived_ids)}):[/bold blue]")
        for sprint_id in archived_ids:
            console.print(f"  {sprint_id}  [dim]tkxr archive show {sprint_id}[/dim]")


sprint_app = typer.Typer(help="Sprint management commands")
app.add_typer(sprint_app, name="sprint")


@sprint_app.command("create")
def sprint_create(
    name: str = typer.Argument(..., help="Sprint name"),
    description: Optional[str] = typer.Option(None, "--description", help="Sprint description"),
    goal: Optional[str] = typer.Option(None, "--goal", help="Sprint goal"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="End date (YYYY-MM-DD)"),
):
    """Create a new sprint."""
    with cli_errors():
        storage = get_storage()
        sprint = services.create_sprint(
            storage,
            name,
            description=description,
            goal=goal,
            start_date=start_date,
            end_date=end_date,
        )["sprint"]

    console.print("[green]✓[/green] Sprint created successfully!")
    console.print(f"[bold]{escape(sprint['name'])}[/bold]")
    console.print(f"[dim]  ID: {sprint['id']}[/dim]")
    console.print(f"  Status: {_styled(sprint['status'], STATUS_STYLES)}")
    if sprint.get("goal"):
        console.print(f"[dim]  Goal: {escape(sprint['goal'])}[/dim]")


@sprint_app.command("status")
def sprint_status(
    sprint_id: str = typer.Argument(..., help="Sprint ID"),
    status: str = typer.Argument(..., help="planning, active or completed"),
):
    """Update sprint status. Completing a sprint archives its tickets."""
    if status not in SPRINT_STATUSES:
        console.print("[red]Error:[/red] Invalid status. Must be: planning, active, or completed")
        raise typer.Exit(1)

    with cli_errors():
        storage = get_storage()
        result = _check(services.update_sprint_status(storage, sprint_id, status))

    sprint = result["sprint"]
    console.print("[green]✓[/green] Sprint status updated!")
    console.print(f"[bold]{escape(sprint['name'])}[/bold]")
    console.print(f"[dim]  ID: {sprint['id']}[/dim]")
    console.print(f"  Status: {_styled(sprint['status'], STATUS_STYLES)}")
    if result["archived"]:
        archived = result["archived"]
        console.print(
            f"[dim]  Archived {archived['tickets']} ticket(s) and {archived['comments']} comment(s)[/dim]"
        )


archive_app = typer.Typer(help="Completed sprint archives")
app.add_typer(archive_app, name="archive")


@archive_app.command("list")
def archive_list():
    """List sprint ids that have an archive."""
    with cli_errors():
        storage = get_storage()
        sprint_ids = storage.get_archived_sprints()
    if not sprint_ids:
        console.print("[yellow]No archived sprints.[/yellow]")
        return
    for sprint_id in sprint_ids:
        console.print(sprint_id)


@archive_app.command("show")
def archive_show(
    sprint_id: str = typer.Argument(..., help="Sprint ID"),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (text|json|yaml)"),
):
    """Show the tickets archived with a completed sprint."""
    _require_format(output_format, OUTPUT_FORMATS)
    with cli_errors():
        storage = get_storage()
        archive = _check(services.get_archive(storage, sprint_id))

    if output_format != "text":
        _print_structured(archive, output_format)
        return

    console.print(f"[bold]📁 {escape(archive['sprint']['name'])}[/bold] [dim]({sprint_id})[/dim]")
    console.print(f"[dim]Archived: {archive['archivedAt']}[/dim]")
    for t in archive["tickets"]:
        console.print(f"  [blue]{t['id']}[/blue] {_styled(t['status'], STATUS_STYLES)} {escape(t['title'])}")
    console.print(f"[dim]{len(archive['comments'])} comment(s)[/dim]")


# ============================================================================
# Export / MCP
# ============================================================================


@app.command("export")
def export_snapshot(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
    output_format: str = typer.Option("yaml", "--format", "-f", help="Output format (yaml|json)"),
):
    """Export every active record as one project snapshot document."""
    _require_format(output_format, EXPORT_FORMATS)
    with cli_errors():
        storage = get_storage()
        snapshot = storage.snapshot().to_dict()

    text = render_cli(format_response(snapshot, output_format))
    if output is None:
        console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)
        return
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]✓[/green] Exported to {output}")


@app.command("mcp")
def run_mcp():
    """Start the MCP server (stdio) for AI assistants."""
    from .mcp_server import main

    main()


def main():
    app()


if __name__ == "__main__":
    main()
