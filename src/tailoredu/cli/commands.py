"""CLI commands for TailorEDU.

Commands:
- serve: Run the functions API with uvicorn
- personalize: Personalize an assignment from a request JSON file
- validate: Check a personalization response against its request
- roles: Show role ranks, landing routes and navigation
"""

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from tailoredu.core.permissions import (
    ROLE_ORDER,
    UnknownRoleError,
    allowed_routes,
    default_route,
    is_route_allowed,
    navigation_for_role,
    role_rank,
)
from tailoredu.core.personalization import (
    PersonalizationError,
    PersonalizationRequest,
    validate_request,
    validate_response,
)
from tailoredu.core.personalizer import get_personalizer
from tailoredu.llm.client import LLMError

app = typer.Typer(
    name="tailoredu",
    help="TailorEDU service layer: personalization, analysis and class digests.",
    no_args_is_help=True,
)

console = Console()


def _load_json_or_exit(path: Path) -> Any:
    """Read a JSON file, or exit with a readable error."""
    if not path.exists():
        console.print(f"[red]✗ File not found: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(code=1)


def _request_or_exit(data: Any) -> PersonalizationRequest:
    check = validate_request(data)
    if not check.is_valid:
        console.print("[red]✗ Invalid request[/red]")
        for issue in check.issues:
            console.print(f"  [yellow]• {issue.field}: {issue.message}[/yellow]")
        raise typer.Exit(code=1)
    return PersonalizationRequest.from_dict(data)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the functions API."""
    import uvicorn

    console.print(f"[blue]Serving TailorEDU functions on http://{host}:{port}[/blue]")
    uvicorn.run("tailoredu.web.api:app", host=host, port=port, reload=reload)


@app.command()
def personalize(
    request_file: Path = typer.Argument(..., help="Request JSON file"),
    generator: str | None = typer.Option(
        None, "--generator", "-g", help="Generator: rules, llm (default from config)"
    ),
) -> None:
    """Personalize an assignment and validate the result.

    Prints the response JSON; exits 1 if the request or the generated
    response fails validation.
    """
    request = _request_or_exit(_load_json_or_exit(request_file))

    try:
        personalizer = get_personalizer(generator)
        response = personalizer.generate(request)
    except PersonalizationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    except LLMError as e:
        console.print(f"[red]✗ AI gateway error: {e}[/red]")
        raise typer.Exit(code=1)

    console.print_json(json.dumps(response, ensure_ascii=False))

    check = validate_response(response, request)
    if not check.is_valid:
        console.print("[red]✗ Generated response failed validation[/red]")
        for issue in check.issues:
            console.print(f"  [yellow]• {issue.message}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Personalized with '{personalizer.name}'[/green]")


@app.command()
def validate(
    request_file: Path = typer.Argument(..., help="Request JSON file"),
    response_file: Path = typer.Argument(..., help="Response JSON file"),
) -> None:
    """Check a personalization response against its request."""
    request = _request_or_exit(_load_json_or_exit(request_file))
    response = _load_json_or_exit(response_file)

    check = validate_response(response, request)
    if check.is_valid:
        console.print("[green]✓ Response is valid[/green]")
        return

    console.print(f"[red]✗ {len(check.issues)} issue(s)[/red]")
    for issue in check.issues:
        console.print(f"  [yellow]• {issue.field}: {issue.message}[/yellow]")
    raise typer.Exit(code=1)


@app.command()
def roles(
    role: str | None = typer.Argument(None, help="Show details for one role"),
    route: str | None = typer.Option(None, "--route", "-r", help="Check access to a route"),
) -> None:
    """Show role ranks and landing routes, or one role's access."""
    if role is None:
        table = Table(title="Roles")
        table.add_column("Rank", justify="right")
        table.add_column("Role")
        table.add_column("Landing route")
        for name in ROLE_ORDER:
            table.add_row(str(role_rank(name)), name, default_route(name))
        console.print(table)
        return

    try:
        rank = role_rank(role)
    except UnknownRoleError as e:
        console.print(f"[red]✗ {e.args[0]}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[bold]{role}[/bold] (rank {rank})")
    console.print(f"  [dim]landing:[/dim] {default_route(role)}")

    if route is not None:
        if is_route_allowed(route, role):
            console.print(f"  [green]✓ {route} allowed[/green]")
        else:
            console.print(f"  [red]✗ {route} not allowed[/red]")
            raise typer.Exit(code=1)
        return

    console.print(f"  [dim]routes:[/dim] {', '.join(allowed_routes(role))}")
    console.print("  [dim]navigation:[/dim]")
    for item in navigation_for_role(role):
        console.print(f"    - {item.label} ({item.path})")


if __name__ == "__main__":
    app()
