"""Engram CLI application - main entry point."""

import typer
from rich.console import Console
from rich.traceback import install

# Install rich traceback handler for better error messages
install(show_locals=False, width=None, word_wrap=True)

app = typer.Typer(
    name="engram",
    help="Long-term semantic memory store for conversational agents",
    no_args_is_help=True,
)

console = Console()


@app.command()
def version():
    """Show the installed version."""
    from engram import __version__

    console.print(f"engram {__version__}")


# Register subcommands from separate modules
from .memory import memory_app  # noqa: E402

app.add_typer(memory_app, name="memory")
