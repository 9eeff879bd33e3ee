"""
Typer commands: resolve, init, cached and diagnose.
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from setup_db import __version__
from setup_db.api.client import RemoteIndex
from setup_db.core.resolver import DependencyResolver
from setup_db.exceptions import SetupDbError
from setup_db.models.config import ResolverConfig
from setup_db.models.stats import ResolutionStats
from setup_db.storage.cache import LocalCache
from setup_db.storage.config_manager import ConfigManager

from .formatters import (
    format_error_with_suggestions,
    print_cached_table,
    print_config,
    print_summary_panel,
)

# stdout carries only the resolved path; everything else goes to stderr
console = Console(stderr=True)

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("setup_db")

app = typer.Typer(
    name="setup-db",
    help=(
        "Resolves a NuGet database driver package and its dependencies into a"
        " local package directory. Use 'setup-db <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "setup-db"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None) -> ResolverConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except SetupDbError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=2) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show more log output (-vv for debug messages).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only log warnings and errors."
    ),
    version: bool = typer.Option(
        False, "--version", help="Print the version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the effective configuration."
    ),
):
    """NuGet driver package resolver"""
    if version:
        console.print(f"[bold]setup-db[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if quiet:
        log_level = "WARNING"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("setup_db").setLevel(log_level)

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def resolve(
    package: str = typer.Argument(..., help="NuGet package id, e.g. Npgsql."),
    version: str | None = typer.Argument(
        None, help="Exact version to use. Defaults to the latest release."
    ),
    pkg_path: str | None = typer.Option(
        None,
        "-p",
        "--pkg-path",
        help="Directory for the package cache (default .pkg).",
    ),
    workers: int | None = typer.Option(
        None,
        "-w",
        "--workers",
        help="Maximum simultaneous requests to the package index (default 8).",
    ),
    index_url: str | None = typer.Option(
        None, "--index-url", help="Base URL of the NuGet V3 registration index."
    ),
    flat_url: str | None = typer.Option(
        None, "--flat-url", help="Base URL of the NuGet V3 flat container."
    ),
):
    """Resolve a package and print the path of its library."""
    config = _load_config(
        {
            "pkg_path": pkg_path,
            "max_workers": workers,
            "index_base_url": index_url,
            "flat_base_url": flat_url,
        }
    )

    async def _resolve_async():
        stats = ResolutionStats()
        async with RemoteIndex(config) as index:
            resolver = DependencyResolver(
                index, LocalCache(config.pkg_path), config, stats
            )
            return await resolver.resolve(package, version), stats

    try:
        resolved, stats = asyncio.run(_resolve_async())
    except SetupDbError as e:
        console.print(
            format_error_with_suggestions(
                e, {"package": package, "version": version or "latest"}
            )
        )
        log.debug("Full traceback:", exc_info=True)
        raise typer.Exit(code=1) from e

    print_summary_panel(resolved, stats)
    typer.echo(str(resolved.primary_artifact_path))


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with all default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except SetupDbError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def cached(
    pkg_path: str | None = typer.Option(
        None, "-p", "--pkg-path", help="Directory of the package cache."
    ),
):
    """List the package manifests held in the package cache."""
    config = _load_config({"pkg_path": pkg_path})
    cache = LocalCache(config.pkg_path)
    print_cached_table(cache.cache_dir, cache.list_manifests())


@app.command()
def diagnose(
    package: str = typer.Option(
        "Newtonsoft.Json",
        "--package",
        help="Well-known package used to check the index.",
    ),
):
    """Check the configuration, the package directory and the package index."""
    console.print("\n[bold cyan]Checking setup-db...[/bold cyan]\n")
    problems: list[str] = []

    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Using configuration [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(f"[yellow]•[/] No [dim]{CONFIG_FILE}[/dim], built-in defaults apply.")
    config = _load_config()

    pkg_dir = Path(config.pkg_path).resolve()
    writable_dir = pkg_dir if pkg_dir.exists() else pkg_dir.parent
    if os.access(writable_dir, os.W_OK):
        console.print(f"[green]✓[/] Package directory [dim]{pkg_dir}[/dim] is writable")
    else:
        problems.append(f"cannot write to {pkg_dir}")

    async def check_index() -> None:
        async with RemoteIndex(config) as index:
            entry = await index.latest_version(package)
        console.print(
            f"[green]✓[/] {config.index_base_url} lists {package} {entry.version}"
        )

    try:
        asyncio.run(check_index())
    except SetupDbError as e:
        problems.append(f"index lookup failed: {e}")

    console.print()
    if problems:
        for problem in problems:
            console.print(f"[red]✗ {problem}[/red]")
        raise typer.Exit(code=1)
    console.print("[bold green]✓ Ready to resolve packages.[/bold green]\n")
