"""CLI commands for managing themes, plugins and commands.

Usage:
    panelbase themes install <source> [--force]
    panelbase themes list [<id>]
    panelbase themes update <id>
    panelbase themes remove <id>
    panelbase themes create <dir> --name ... --source-link ...

The same install/list/update/remove commands exist for ``plugins`` and
``commands``; ``create`` exists for themes and plugins.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from panelbase.core.extensions import (
    CommandManifest,
    ExtensionEngine,
    ExtensionError,
    ExtensionExistsError,
    ExtensionManifest,
    PluginManifest,
    StateSaveError,
)
from panelbase.core.extensions.models import count_files

console = Console()
err_console = Console(stderr=True)


def _engine(ctx: click.Context, kind_name: str) -> ExtensionEngine:
    return ctx.find_root().obj["engines"][kind_name]


def _fail(e: ExtensionError) -> None:
    """Report an extension error on stderr and exit 1"""
    err_console.print(f"[red]Error: {escape(str(e))}[/red]", soft_wrap=True, highlight=False)
    if isinstance(e, ExtensionExistsError):
        err_console.print("[yellow]Hint: re-run with --force to overwrite the existing installation[/yellow]")
    if isinstance(e, StateSaveError) and e.manifest is not None:
        err_console.print(
            f"[yellow]Files for '{e.manifest.name}' v{e.manifest.version} are on disk "
            f"but not recorded in the state file[/yellow]",
            soft_wrap=True,
        )
    sys.exit(1)


def _print_details(local_id: str, manifest: ExtensionManifest, entry) -> None:
    console.print(f"[bold cyan]{manifest.name}[/bold cyan] v{manifest.version}", soft_wrap=True)
    console.print(f"  ID: {local_id}", soft_wrap=True)
    console.print(f"  Description: {manifest.description}", soft_wrap=True)
    if manifest.authors:
        console.print(f"  Authors: {', '.join(manifest.author_names)}", soft_wrap=True)
    console.print(f"  Source: {entry.source_link}", soft_wrap=True)
    if entry.installed_at:
        console.print(f"  Installed: {entry.installed_at}")
    if entry.last_updated:
        console.print(f"  Last updated: {entry.last_updated}")

    if isinstance(manifest, PluginManifest):
        console.print(f"  API version: {manifest.api_version}")
        for path, cfg in sorted(manifest.endpoints.items()):
            console.print(f"  Endpoint: {path} [{', '.join(cfg.methods)}]", soft_wrap=True, markup=False)
        for module, version in sorted(manifest.dependencies.items()):
            console.print(f"  Dependency: {module} {version}", soft_wrap=True)
    if isinstance(manifest, CommandManifest):
        console.print(f"  Package managers: {', '.join(manifest.pkg_managers)}", soft_wrap=True)
        if manifest.dependencies:
            console.print(f"  Dependencies: {', '.join(manifest.dependencies)}", soft_wrap=True)
    else:
        console.print(f"  Files: {count_files(manifest.structure)}")


def _make_group(kind_name: str, help_text: str) -> click.Group:
    """Build the install/list/update/remove group for one extension kind"""

    @click.group(name=kind_name, help=help_text)
    def group():
        pass

    @group.command(name="install")
    @click.argument("source")
    @click.option("--force", is_flag=True, help="Overwrite an existing installation of the same version")
    @click.pass_context
    def install_cmd(ctx, source: str, force: bool):
        """Install from a URL or local path."""
        engine = _engine(ctx, kind_name)
        try:
            engine.install(source, force=force)
        except ExtensionError as e:
            _fail(e)

    @group.command(name="list")
    @click.argument("local_id", required=False)
    @click.pass_context
    def list_cmd(ctx, local_id: Optional[str]):
        """List installed entries, or show one in detail."""
        engine = _engine(ctx, kind_name)
        try:
            if local_id:
                manifest, entry = engine.get(local_id)
                _print_details(entry.id, manifest, entry)
                return
            entries = engine.list()
        except ExtensionError as e:
            _fail(e)

        if not entries:
            console.print(f"[yellow]No {kind_name} installed.[/yellow]")
            return

        table = Table(title=f"Installed {kind_name} ({len(entries)})")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Version", style="green")
        table.add_column("Source", style="dim")
        for key in sorted(entries):
            entry = entries[key]
            table.add_row(key, entry.name, entry.version, entry.source_link)
        console.print(table)

    @group.command(name="update")
    @click.argument("local_id")
    @click.pass_context
    def update_cmd(ctx, local_id: str):
        """Update to the version published at the recorded source."""
        engine = _engine(ctx, kind_name)
        try:
            engine.update(local_id)
        except ExtensionError as e:
            _fail(e)

    @group.command(name="remove")
    @click.argument("local_id")
    @click.pass_context
    def remove_cmd(ctx, local_id: str):
        """Remove an installed entry."""
        engine = _engine(ctx, kind_name)
        try:
            engine.remove(local_id)
        except ExtensionError as e:
            _fail(e)

    return group


def _create(ctx, kind_name: str, directory: Path, **fields) -> None:
    engine = _engine(ctx, kind_name)
    try:
        engine.create(directory, **fields)
    except ExtensionError as e:
        _fail(e)


themes_group = _make_group("themes", "Manage themes.")
plugins_group = _make_group("plugins", "Manage plugins.")
commands_group = _make_group("commands", "Manage commands.")


_create_options = [
    click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path)),
    click.option("--name", required=True, help="Extension name"),
    click.option("--author", "authors", multiple=True, help="Author name (repeatable)"),
    click.option("--version", "version", required=True, help="Version string"),
    click.option("--description", required=True, help="Short description"),
    click.option("--source-link", required=True, help="http(s) URL the directory will be published under"),
]


def _with_create_options(func):
    for option in reversed(_create_options):
        func = option(func)
    return func


@themes_group.command(name="create")
@_with_create_options
@click.pass_context
def themes_create_cmd(ctx, directory, name, authors, version, description, source_link):
    """Generate theme.yaml for a directory of theme files."""
    _create(
        ctx, "themes", directory,
        name=name, authors=list(authors), version=version,
        description=description, source_link=source_link,
    )


@plugins_group.command(name="create")
@_with_create_options
@click.option("--api-version", required=True, help="Plugin API version")
@click.pass_context
def plugins_create_cmd(ctx, directory, name, authors, version, description, source_link, api_version):
    """Generate plugin.yaml for a directory of plugin files."""
    _create(
        ctx, "plugins", directory,
        name=name, authors=list(authors), version=version,
        description=description, source_link=source_link, api_version=api_version,
    )
