from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from .catalog import DATA_DIR, GameRuleSet
from .constants import DEFAULT_SAVE
from .engine import Session, new_game
from .errors import CatalogError
from .io import FileSaveStore, load_or_new, save_session
from .view import build_view_model

app = typer.Typer(add_completion=False)


@app.callback()
def configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _render_status(vm: dict) -> None:
    rprint(f"[bold]A Dark Cave[/bold]  (played {vm['play_time_ms'] // 1000}s, storage {vm['resource_limit']})")

    if vm["resources"]:
        table = Table(title="Resources", show_header=True, header_style="bold")
        table.add_column("Resource")
        table.add_column("Amount", justify="right")
        for name, amount in sorted(vm["resources"].items()):
            table.add_row(name.replace("_", " ").title(), f"{amount:g}")
        rprint(table)

    if vm["buildings"] or vm["villagers"]:
        btable = Table(title="Village", show_header=True, header_style="bold")
        btable.add_column("Building / villagers")
        btable.add_column("Count", justify="right")
        for name, count in sorted(vm["buildings"].items()):
            btable.add_row(name, str(count))
        for name, count in sorted(vm["villagers"].items()):
            btable.add_row(f"villagers: {name}", str(count))
        rprint(btable)

    owned = vm["tools"] + vm["weapons"] + vm["relics"]
    if owned:
        rprint(f"[dim]Carrying:[/dim] {', '.join(owned)}")

    if vm["recent_log"]:
        rprint("[bold]Recent events[/bold]")
        for e in vm["recent_log"]:
            style = "dim" if e["type"] == "system" else "italic"
            rprint(f"- [{style}]{e['message']}[/{style}]")

    _render_actions(vm)


def _render_actions(vm: dict) -> None:
    table = Table(title="Actions", show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Action")
    table.add_column("Cost")
    table.add_column("Status")
    for a in vm["actions"]:
        label = a["label"] if a["tier"] is None else f"{a['label']} (tier {a['tier']})"
        if a["available"]:
            state = "[green]ready[/green]"
        elif a["cooldown_ms"]:
            state = f"[yellow]{a['cooldown_ms'] / 1000:.1f}s[/yellow]"
        else:
            state = f"[red]{a['why_locked']}[/red]"
        table.add_row(a["id"], label, a["cost"], state)
    rprint(table)


def _load_rules(catalog: Path) -> GameRuleSet:
    try:
        return GameRuleSet.from_directory(catalog)
    except CatalogError as exc:
        rprint(f"[red]Invalid action catalog:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2)


def _open(save: Path, catalog: Path, seed: Optional[int]) -> tuple[Session, FileSaveStore]:
    rules = _load_rules(catalog)
    store = FileSaveStore(save.parent)
    session, error = load_or_new(store, rules, key=save.stem, seed=seed)
    if error is not None:
        rprint(f"[red]Save could not be loaded ({escape(str(error))}); starting a new game.[/red]")
    return session, store


@app.command()
def status(save: Path = DEFAULT_SAVE, catalog: Path = DATA_DIR, seed: Optional[int] = None):
    session, _ = _open(save, catalog, seed)
    _render_status(build_view_model(session))


@app.command()
def act(action_id: str, save: Path = DEFAULT_SAVE, catalog: Path = DATA_DIR, seed: Optional[int] = None):
    session, store = _open(save, catalog, seed)
    result = session.execute(action_id)
    if result.success:
        for entry in result.log_entries:
            rprint(f"[italic]{entry.message}[/italic]")
    else:
        rprint(f"[red]{escape(action_id)}: {result.reason.value}[/red] {escape('; '.join(result.missing))}")
    save_session(session, store, key=save.stem)
    _render_status(build_view_model(session))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def actions(save: Path = DEFAULT_SAVE, catalog: Path = DATA_DIR, seed: Optional[int] = None):
    session, _ = _open(save, catalog, seed)
    _render_actions(build_view_model(session))


@app.command()
def dump(save: Path = DEFAULT_SAVE, catalog: Path = DATA_DIR, seed: Optional[int] = None):
    session, _ = _open(save, catalog, seed)
    print(json.dumps(build_view_model(session), indent=2, sort_keys=True))


@app.command()
def reset(save: Path = DEFAULT_SAVE, catalog: Path = DATA_DIR, seed: Optional[int] = None):
    session = new_game(_load_rules(catalog), seed=seed)
    save_session(session, FileSaveStore(save.parent), key=save.stem)
    rprint("[bold]The fire is out. A new game begins.[/bold]")
    _render_status(build_view_model(session))


def main():
    app()


if __name__ == "__main__":
    main()
