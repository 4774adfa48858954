"""CLI main entry point"""

from pathlib import Path

import click

from panelbase import __version__
from panelbase.cli.extensions import commands_group, plugins_group, themes_group
from panelbase.config import ConfigError, load_settings
from panelbase.core.logging import configure_logging
from panelbase.core.startup import bootstrap
from panelbase.core.storage import paths
from panelbase.core.utils.idgen import IDGenerator


@click.group()
@click.version_option(version=__version__, prog_name="panelbase")
@click.option("--home", type=click.Path(file_okay=False, path_type=Path), envvar=paths.HOME_ENV,
              help="Base directory holding configs/, ext/ and logs/ (default: current directory)")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, home, verbose):
    """PanelBase - extension manager for themes, plugins and commands"""
    root = paths.ensure_layout(home.expanduser() if home else paths.panelbase_home())
    configure_logging(paths.logs_dir(root), verbose=verbose)

    try:
        settings = load_settings(root)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    id_generator = IDGenerator(settings.secrets_alphabet, settings.secrets_length)
    ctx.obj = {
        "home": root,
        "settings": settings,
        "engines": bootstrap(root, id_generator=id_generator),
    }


cli.add_command(themes_group)
cli.add_command(plugins_group)
cli.add_command(commands_group)


if __name__ == "__main__":
    cli()
