"""
Command-line interface for sqlroute.
"""

import sys
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import SqlrouteConfig, configure_logging
from .dialect.features import Feature
from .dialect.profiles import available_dialects, get_dialect
from .exceptions import ConfigurationError, SqlrouteError
from .schema.ddl import DdlGenerator
from .schema.loader import load_delta, load_table


console = Console()


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SqlrouteError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """sqlroute: owner-routed connections and multi-dialect DDL."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@handle_errors
def dialects():
    """List supported dialects and their features."""
    table = Table(title="Dialects")
    table.add_column("Name", style="cyan")
    table.add_column("Features", style="green")

    for name in available_dialects():
        profile = get_dialect(name)
        features = ", ".join(sorted(f.value for f in profile.features)) or "-"
        table.add_row(name, features)

    console.print(table)


def _print_statements(statements, terminator: str) -> None:
    if not statements:
        console.print("[yellow]No statements generated[/yellow]")
        return
    for sql in statements:
        # plain print keeps the SQL free of rich markup
        click.echo(f"{sql}{terminator}")


@main.command()
@click.argument("delta_file", type=click.Path(exists=True))
@click.option("--dialect", "-d", required=True, help="Target dialect")
@click.option("--terminator", default=";", show_default=True, help="Statement terminator")
@handle_errors
def alter(delta_file: str, dialect: str, terminator: str):
    """Render ALTER TABLE statements for a schema delta file."""
    generator = DdlGenerator(get_dialect(dialect))
    delta = load_delta(delta_file)
    _print_statements(generator.build_alter_for(delta), terminator)


@main.command()
@click.argument("table_file", type=click.Path(exists=True))
@click.option("--dialect", "-d", required=True, help="Target dialect")
@click.option("--terminator", default=";", show_default=True, help="Statement terminator")
@handle_errors
def create(table_file: str, dialect: str, terminator: str):
    """Render CREATE TABLE and related statements for a table file."""
    generator = DdlGenerator(get_dialect(dialect))
    table = load_table(table_file)
    _print_statements(generator.build_create_table(table).statements(), terminator)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        sqlroute_config = SqlrouteConfig.from_yaml(config)
        sqlroute_config.validate_config()

        console.print("[green]✓[/green] Configuration is valid")

        _display_config_summary(sqlroute_config)

    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option("--datasource", help="Datasource to test (defaults to the default datasource)")
@click.pass_context
@handle_errors
def test_connection(ctx, config: str, datasource: Optional[str]):
    """Open a routed connection and report pool status."""
    sqlroute_config = SqlrouteConfig.from_yaml(config)
    if ctx.obj.get("debug"):
        sqlroute_config.logging.level = "DEBUG"
    configure_logging(sqlroute_config.logging)

    with sqlroute_config.build_pool() as pool:
        with pool.connection(datasource_key=datasource) as handle:
            info = pool.get_info(handle.datasource_key)
            status = pool.get_status()

            table = Table(title="Connection Test")
            table.add_column("Property", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Datasource", info.datasource_key)
            table.add_row("Dialect", info.dialect)
            table.add_row("URL", info.url)
            table.add_row("Handle state", handle.state.value)
            table.add_row("Active owners", str(status.active))
            table.add_row(
                "Remarks readable",
                "yes" if pool.has_remark_feature(info.datasource_key) else "no",
            )
            console.print(table)

    console.print("[green]✓[/green] Connection test succeeded")


def _display_config_summary(config: SqlrouteConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    ds_table = Table(title="Datasources")
    ds_table.add_column("Name", style="cyan")
    ds_table.add_column("Driver", style="magenta")
    ds_table.add_column("Dialect", style="green")
    ds_table.add_column("Target", style="yellow")

    for ds in config.datasources:
        ds_table.add_row(ds.name, ds.driver, ds.resolved_dialect, ds.url)

    console.print(ds_table)

    try:
        default = config.resolve_default_datasource()
    except ConfigurationError:
        default = "-"
    console.print(f"Default datasource: [cyan]{default}[/cyan]")
    console.print(
        f"Owner registry stripes: {config.pool.concurrency_level}, "
        f"metadata pool size: {config.pool.metadata_min_size}-{config.pool.metadata_max_size}"
    )

    remark_dialects = [
        ds.name for ds in config.datasources
        if get_dialect(ds.resolved_dialect).has(Feature.REMARK_META_FETCH)
    ]
    if remark_dialects:
        console.print(f"Remark fetching available on: {', '.join(remark_dialects)}")


if __name__ == "__main__":
    main()
