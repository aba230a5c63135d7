#!/usr/bin/env python3
"""
Command line for PromptPad.

Usage:
    pp list                 - List prompts by usage
    pp search "query"       - Search prompts
    pp add NAME             - Add a prompt (content from --content or stdin)
    pp import FILE          - Import a JSON list or a markdown file
    pp export FILE          - Export all prompts as JSON
    pp reindex              - Rebuild the index from the prompt files
    pp folders              - List folders
    pp show                 - Show the launcher
    pp toggle               - Show or hide the launcher
    pp cat ID               - Print a prompt's body
    pp edit ID              - Update a prompt
    pp delete ID            - Delete a prompt
    pp grep "text"          - Find prompts by body text
    pp mkdir NAME           - Create a folder
    pp tags                 - List tags
    pp settings             - Show or change settings (--set KEY=VALUE)
    pp daemon start         - Start the daemon
    pp daemon stop          - Stop the daemon
    pp daemon status        - Check daemon status
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import httpx
import yaml
from loguru import logger
from rich.console import Console
from rich.table import Table


console = Console()

# Default daemon URL
DAEMON_URL = os.environ.get("PROMPTPAD_URL", "http://localhost:8766")


class DaemonUnavailable(Exception):
    pass


async def request(method: str, path: str, **kwargs: Any) -> Any:
    """Call the daemon API; raises click errors with the daemon's message."""
    try:
        async with httpx.AsyncClient(base_url=DAEMON_URL) as client:
            response = await client.request(method, path, timeout=10.0, **kwargs)
    except httpx.ConnectError:
        raise DaemonUnavailable() from None

    if response.status_code >= 400:
        try:
            message = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            message = response.text
        raise click.ClickException(message)
    return response.json()


def run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except DaemonUnavailable:
        console.print("[red]Cannot connect to daemon. Is it running?[/red]")
        console.print("Start with: [cyan]pp daemon start[/cyan]")
        sys.exit(1)


def display_results(data: Dict[str, Any], title: str) -> None:
    results = data.get("results", [])
    if not results:
        console.print("[yellow]No prompts found[/yellow]")
        return

    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Folder", style="magenta")
    table.add_column("Tags")
    table.add_column("Uses", justify="right")
    table.add_column("Score", justify="right")

    for r in results:
        prompt = r.get("prompt", {})
        table.add_row(
            prompt.get("name", ""),
            prompt.get("folder", ""),
            ", ".join(prompt.get("tags", [])),
            str(prompt.get("useCount", 0)),
            f"{r.get('score', 0):.2f}",
        )

    console.print(table)


@click.group()
def cli():
    """PromptPad - keyboard-driven prompt launcher."""


@cli.command(name="list")
@click.option("--limit", "-l", default=20, help="Max results")
def list_prompts(limit: int):
    """List prompts, most used first."""
    data = run(request("GET", "/prompts", params={"q": "", "limit": limit}))
    display_results(data, f"Prompts ({data.get('total', 0)} total)")


@cli.command()
@click.argument("query")
@click.option("--limit", "-l", default=10, help="Max results")
def search(query: str, limit: int):
    """Search prompts."""
    data = run(request("GET", "/prompts", params={"q": query, "limit": limit}))
    display_results(data, f"Results for {query!r}")


@cli.command()
@click.argument("name")
@click.option("--content", "-c", help="Prompt body (reads stdin when omitted)")
@click.option("--description", "-d", help="Short description")
@click.option("--folder", "-f", help="Folder to store the prompt in")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
def add(name: str, content: Optional[str], description: Optional[str], folder: Optional[str], tags):
    """Add a prompt."""
    if content is None:
        content = click.get_text_stream("stdin").read()
    data = run(request("POST", "/prompts", json={
        "name": name,
        "content": content,
        "description": description,
        "folder": folder,
        "tags": list(tags),
    }))
    console.print(f"[green]✓[/green] Added {data['name']} ({data['filePath']})")


@cli.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--folder", "-f", help="Folder for a markdown import")
def import_prompts(file: Path, folder: Optional[str]):
    """Import a JSON list of prompts or a single markdown file."""
    text = file.read_text(encoding="utf-8")
    if file.suffix.lower() != ".json":
        data = run(request("POST", "/import/markdown", json={
            "fileName": file.name,
            "content": text,
            "folder": folder,
        }))
        console.print(f"[green]✓[/green] Imported {data['name']} ({data['filePath']})")
        return

    try:
        items = json.loads(text)
    except ValueError as e:
        raise click.ClickException(f"Invalid JSON: {e}")
    report = run(request("POST", "/import", json=items))
    console.print(f"[green]Imported {report['success']}[/green], failed {report['failed']}")
    for error in report.get("errors", []):
        console.print(f"  [red]✗[/red] {error['item']}: {error['message']}")


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
def export(file: Path):
    """Export all prompts to a JSON file."""
    items = run(request("GET", "/export"))
    file.write_text(json.dumps(items, indent=2, ensure_ascii=False), encoding="utf-8")
    console.print(f"[green]✓[/green] Exported {len(items)} prompts to {file}")


@cli.command()
def reindex():
    """Rebuild the index from the prompt files."""
    data = run(request("POST", "/admin/reindex"))
    report = data.get("report", {})
    console.print(f"[green]✓[/green] Indexed {data.get('prompts', 0)} prompts")
    for error in report.get("errors", []):
        console.print(f"  [yellow]skipped[/yellow] {error['item']}: {error['message']}")


@cli.command()
def folders():
    """List folders."""
    data = run(request("GET", "/folders"))
    for name in data.get("folders", []):
        console.print(name)


@cli.command()
def show():
    """Ask the daemon to show the launcher."""
    state = run(request("POST", "/show"))
    console.print(f"Launcher visible, {len(state.get('results', []))} prompts listed")


@cli.command()
def toggle():
    """Show the launcher when hidden, hide it otherwise."""
    state = run(request("POST", "/toggle"))
    console.print("Launcher visible" if state.get("visible") else "Launcher hidden")


@cli.command()
@click.argument("prompt_id")
def cat(prompt_id: str):
    """Print a prompt's body."""
    data = run(request("GET", f"/prompts/{prompt_id}/content"))
    click.echo(data["content"])


@cli.command()
@click.argument("prompt_id")
@click.option("--name", "-n", help="New name")
@click.option("--content", "-c", help="New body ('-' reads stdin)")
@click.option("--description", "-d", help="New description")
@click.option("--folder", "-f", help="Move to this folder")
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags (repeatable)")
def edit(prompt_id: str, name: Optional[str], content: Optional[str],
         description: Optional[str], folder: Optional[str], tags):
    """Update a prompt; options left out keep their value."""
    if content == "-":
        content = click.get_text_stream("stdin").read()
    changes: Dict[str, Any] = {
        "name": name,
        "content": content,
        "description": description,
        "folder": folder,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if tags:
        changes["tags"] = list(tags)
    if not changes:
        raise click.UsageError("Nothing to change")
    data = run(request("PUT", f"/prompts/{prompt_id}", json=changes))
    console.print(f"[green]✓[/green] Updated {data['name']} ({data['filePath']})")


@cli.command()
@click.argument("prompt_id")
@click.confirmation_option(prompt="Delete this prompt?")
def delete(prompt_id: str):
    """Delete a prompt."""
    run(request("DELETE", f"/prompts/{prompt_id}"))
    console.print(f"[green]✓[/green] Deleted {prompt_id}")


@cli.command()
@click.argument("query")
def grep(query: str):
    """List prompts whose body contains QUERY."""
    data = run(request("GET", "/search/content", params={"q": query}))
    results = data.get("results", [])
    if not results:
        console.print("[yellow]No prompts found[/yellow]")
        return
    for prompt in results:
        console.print(f"[cyan]{prompt['name']}[/cyan]  {prompt['filePath']}  [dim]{prompt['id']}[/dim]")


@cli.command()
@click.argument("name")
def mkdir(name: str):
    """Create a folder."""
    data = run(request("POST", "/folders", json={"name": name}))
    console.print(f"[green]✓[/green] Created folder {data['folder']}")


@cli.command()
def tags():
    """List tags in use."""
    data = run(request("GET", "/tags"))
    for name in data.get("tags", []):
        console.print(name)


def parse_setting(assignment: str) -> Dict[str, Any]:
    """``search.cutoff=0.3`` -> ``{"search": {"cutoff": 0.3}}``."""
    key, sep, raw = assignment.partition("=")
    if not sep or not key.strip():
        raise click.BadParameter(f"expected KEY=VALUE, got {assignment!r}")
    value: Any = yaml.safe_load(raw) if raw.strip() else raw
    for part in reversed(key.strip().split(".")):
        value = {part: value}
    return value


@cli.command()
@click.option("--set", "-s", "assignments", multiple=True, metavar="KEY=VALUE",
              help="Change a setting, e.g. search.cutoff=0.3 (repeatable)")
def settings(assignments):
    """Show settings, or change them with --set."""
    if assignments:
        changes: Dict[str, Any] = {}
        for assignment in assignments:
            for key, value in parse_setting(assignment).items():
                if isinstance(value, dict) and isinstance(changes.get(key), dict):
                    changes[key].update(value)
                else:
                    changes[key] = value
        data = run(request("PUT", "/settings", json=changes))
    else:
        data = run(request("GET", "/settings"))
    console.print(yaml.safe_dump(data, default_flow_style=False).rstrip())


@cli.group()
def daemon():
    """Manage the PromptPad daemon."""


@daemon.command()
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
def start(config: Optional[str]):
    """Start the PromptPad daemon."""
    console.print("[cyan]Starting PromptPad daemon...[/cyan]")

    from promptpad.launcher.main import main as daemon_main

    try:
        asyncio.run(daemon_main(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Daemon stopped by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Daemon error:[/red] {e}")
        logger.exception("Daemon crashed")


@daemon.command()
def stop():
    """Stop the PromptPad daemon."""
    try:
        asyncio.run(request("POST", "/shutdown"))
        console.print("[green]Daemon stopped[/green]")
    except DaemonUnavailable:
        console.print("[yellow]Daemon not running[/yellow]")


@daemon.command()
def status():
    """Check daemon status."""
    try:
        data = asyncio.run(request("GET", "/status"))
    except DaemonUnavailable:
        console.print("[red]✗ Daemon is not running[/red]")
        console.print("Start with: [cyan]pp daemon start[/cyan]")
        return

    console.print("[green]✓ Daemon is running[/green]")
    stats = data.get("stats", {})
    console.print(f"\nUptime: {data.get('uptime', 'unknown')}")
    console.print(f"Prompts: {stats.get('prompt_count', 0)}")
    console.print(f"Pastes: {stats.get('paste_count', 0)}")
    console.print(f"Memory: {stats.get('memory_mb', 0):.1f} MB")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
