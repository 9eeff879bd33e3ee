"""
Entry point for `setup-db` and `python -m setup_db`.

Anything the typer app lets escape is reported here as an error panel on
stderr, so stdout never carries anything but the resolved library path.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from setup_db.cli.app import app
from setup_db.cli.formatters import format_error_with_suggestions
from setup_db.exceptions import SetupDbError

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def main() -> None:
    if os.name == "nt":
        for stream in (sys.stdout, sys.stderr):
            try:
                stream.reconfigure(encoding="utf-8")
            except (TypeError, AttributeError):
                pass

    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Resolution interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except SetupDbError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print()
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        logging.getLogger("setup_db").debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
