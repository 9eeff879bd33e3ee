"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from setup_db.exceptions import ResolutionError
from setup_db.models.package import ResolvedPackage
from setup_db.models.stats import ResolutionStats
from setup_db.utils.formatting import format_duration, format_size

err_console = Console(stderr=True)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    cause = error.cause if isinstance(error, ResolutionError) else error
    cause_type = type(cause).__name__

    suggestions_map = {
        "PackageNotFoundError": [
            "• Check the spelling of the package id.",
            "• Make sure --index-url points at a NuGet V3 registration base.",
        ],
        "ArtifactNotFoundError": [
            "• The package ships no library for netstandard/netcoreapp.",
            "• Add a prefix to 'library_prefixes' in the configuration file.",
        ],
        "RemoteFetchError": [
            "• Check the package id and the pinned version.",
            "• Verify --index-url and --flat-url.",
        ],
        "RetriesExhaustedError": [
            "• The package index did not answer in time.",
            "• Check your internet connection and try again later.",
            "• Increase 'request_timeout' or 'max_attempts' in the configuration.",
        ],
        "CircuitBreakerError": [
            "• Too many requests to the package index failed in a row.",
            "• Wait a moment and run the command again.",
        ],
        "ManifestParseError": [
            "• The cached or downloaded nuspec is damaged.",
            "• Delete the '.nuspec' file from the package directory and retry.",
        ],
        "ArchiveFormatError": [
            "• The downloaded package is not a valid .nupkg archive.",
        ],
        "DependencyCycleError": [
            "• The package graph contains a cycle; pin a different version.",
        ],
        "ConfigurationError": [
            "• Run `setup-db --show-config` to inspect the settings.",
            "• Run `setup-db init --force` to write a fresh configuration file.",
        ],
    }

    suggestions = suggestions_map.get(
        cause_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{type(error).__name__}: ", style="bold red")
    error_text.append(str(error))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the effective configuration."""
    content = ""
    for key, value in sorted(config_data.items()):
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    err_console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_summary_panel(resolved: ResolvedPackage, stats: ResolutionStats):
    """Prints a summary of a finished resolution."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Package:", f"{resolved.name} [green]{resolved.version}[/green]")
    table.add_row("Library:", f"[dim]{resolved.primary_artifact_path}[/dim]")
    table.add_row("Packages resolved:", str(stats.packages_resolved))
    table.add_row(
        "Manifests:",
        f"{stats.manifests_downloaded} downloaded, "
        f"{stats.manifests_from_cache} from cache",
    )
    table.add_row("Archives downloaded:", str(stats.archives_downloaded))
    table.add_row("Libraries written:", str(stats.artifacts_written))
    table.add_row("Transferred:", format_size(stats.bytes_downloaded))
    table.add_row("Time:", format_duration(stats.elapsed))

    err_console.print(
        Panel(
            table,
            title="[bold green]✓ Package Resolved[/bold green]",
            border_style="green",
            expand=False,
        )
    )


def print_cached_table(cache_dir: Path, entries: list[tuple[str, str]]):
    """Lists the manifests held in the package cache."""
    if not entries:
        err_console.print(f"[yellow]No packages cached in '{cache_dir}'.[/yellow]")
        return

    table = Table(title=f"Cached packages ({cache_dir})")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")
    for name, version in entries:
        table.add_row(name, version or "[dim]latest[/dim]")
    err_console.print(table)
