"""
CLI entry point for noteguard.

This module provides the Typer-based command-line interface for noteguard.
It's a developer tool for trying formulas out against sample notes; the
posting pipeline uses ProhibitGate directly.

Commands:
    check       Check a note against a moderation configuration
    validate    Validate a moderation configuration and show its formula
    kinds       List the formula kinds this version understands
"""

import asyncio
import json
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from noteguard import __version__
from noteguard.errors import ConfigLoadError, NoteGuardError
from noteguard.gate import ProhibitGate
from noteguard.logging import configure_logging
from noteguard.schema import (
    KNOWN_FORMULA_TYPES,
    AndFormula,
    Formula,
    MalformedFormula,
    NotFormula,
    OrFormula,
    Role,
    UserRecord,
    dump_formula,
    load_meta,
    load_subject,
)
from noteguard.sources import (
    InMemoryRoleRepository,
    InMemoryUserRepository,
    YamlPolicySource,
)

app = typer.Typer(
    name="noteguard",
    help="Check notes against a prohibited-note formula.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]noteguard[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    noteguard - Formula-based prohibited note detection.
    """
    pass


@app.command()
def check(
    subject_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the note (inspection subject) YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    meta_path: Annotated[
        Path,
        typer.Option(
            "--meta",
            "-m",
            help="Path to the moderation configuration YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    user_path: Annotated[
        Optional[Path],
        typer.Option(
            "--user",
            "-u",
            help="Path to the author's user record YAML. Defaults to a user named after the author id.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    role_ids: Annotated[
        Optional[list[str]],
        typer.Option(
            "--role",
            "-r",
            help="Role id assigned to the author. Repeat for several roles.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the verdict in JSON format."),
    ] = False,
) -> None:
    """
    Check a note against a moderation configuration.

    Exits 0 if the note is allowed, 1 if it's prohibited, 2 on errors.

    Example:
        $ noteguard check note.yaml --meta meta.yaml --user user.yaml --role moderator
    """
    configure_logging("debug" if verbose else "warning")

    try:
        subject = load_subject(subject_path)
        if user_path is not None:
            user = _load_user(user_path)
        else:
            user = UserRecord(id=subject.user_id, username=subject.user_id)
        roles = [Role(id=role_id) for role_id in role_ids or []]

        gate = ProhibitGate(
            policy_source=YamlPolicySource(meta_path),
            users=InMemoryUserRepository([user]),
            roles=InMemoryRoleRepository({subject.user_id: roles}),
        )
        prohibited = asyncio.run(gate.is_prohibited(subject))
    except Exception as e:
        if json_output:
            _output_json_error(e, debug)
        else:
            console.print(f"[red]Error: {e}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=2)

    if json_output:
        print(json.dumps({
            "prohibited": prohibited,
            "user_id": subject.user_id,
            "roles": [r.id for r in roles],
        }, indent=2))
    elif prohibited:
        console.print(f"[red]✗[/red] Note by [bold]{subject.user_id}[/bold] is [red]prohibited[/red]")
    else:
        console.print(f"[green]✓[/green] Note by [bold]{subject.user_id}[/bold] is [green]allowed[/green]")

    raise typer.Exit(code=1 if prohibited else 0)


@app.command()
def validate(
    meta_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the moderation configuration YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
) -> None:
    """
    Validate a moderation configuration and show its formula tree.

    Example:
        $ noteguard validate meta.yaml
    """
    try:
        meta = load_meta(meta_path)
    except NoteGuardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    formula = meta.prohibited_note_pattern
    if formula is None:
        console.print("[yellow]No prohibited-note formula configured.[/yellow]")
        raise typer.Exit(code=0)

    malformed = _malformed_nodes(formula)
    if malformed:
        console.print(
            f"[red]✗[/red] {len(malformed)} malformed node(s); "
            "this formula never matches"
        )
        for node in malformed:
            console.print(f"  [red]{node.type}[/red]: {escape(repr(node.raw))}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Formula is valid")
    console.print(_formula_tree(dump_formula(formula)))


@app.command()
def kinds() -> None:
    """List the formula kinds this version understands."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Parameters")

    for kind, model in KNOWN_FORMULA_TYPES.items():
        params = [
            field.alias or name
            for name, field in model.model_fields.items()
            if name != "type"
        ]
        table.add_row(kind, ", ".join(params))

    console.print(table)


def _load_user(path: Path) -> UserRecord:
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
        return UserRecord.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise ConfigLoadError(path=str(path), underlying_error=str(e)) from e


def _malformed_nodes(formula: Formula) -> list[MalformedFormula]:
    """Collect the nodes that failed to load, depth first."""
    if isinstance(formula, MalformedFormula):
        return [formula]
    if isinstance(formula, (AndFormula, OrFormula)):
        return [m for child in formula.values for m in _malformed_nodes(child)]
    if isinstance(formula, NotFormula):
        return _malformed_nodes(formula.value)
    return []


def _formula_tree(node: dict[str, Any], tree: Tree | None = None) -> Tree:
    """Render a dumped formula as a rich tree."""
    params = {k: v for k, v in node.items() if k not in ("type", "values", "value")}
    kind = node.get("type")
    if kind not in ("and", "or", "not") and "value" in node:
        params["value"] = node["value"]
    if kind not in KNOWN_FORMULA_TYPES:
        label = f"[yellow]{kind}[/yellow] [dim](unknown, never matches)[/dim]"
    else:
        label = f"[cyan]{kind}[/cyan]"
    if params:
        label += " " + ", ".join(f"{k}={v!r}" for k, v in params.items())

    branch = Tree(label) if tree is None else tree.add(label)
    if kind in ("and", "or"):
        for child in node.get("values", []):
            _formula_tree(child, branch)
    elif kind == "not":
        _formula_tree(node["value"], branch)
    return branch


def _output_json_error(error: Exception, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    if isinstance(error, NoteGuardError):
        output: dict[str, Any] = {"error": True, **error.to_dict()}
    else:
        output = {
            "error": True,
            "error_type": error.__class__.__name__,
            "message": str(error),
        }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    app()
