"""
Main CLI entry point for embedprep
"""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

from .. import __version__

install(show_locals=False)

console = Console()

logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)


@click.group()
@click.version_option(version=__version__, prog_name="embedprep")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option(
    "--config", "config_path", type=click.Path(dir_okay=False),
    help="YAML override document (defaults to EMBEDPREP_CONFIG_PATH)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, no_color: bool, config_path: str) -> None:
    """
    embedprep - Content preprocessing and embedding pipeline

    Cleans, chunks and quality-gates content, then embeds the chunks
    through a leased work queue.

    Examples:
      embedprep preprocess post.md --type post      # Inspect chunking
      embedprep config show --type comment          # Resolved configuration
      embedprep queue add post 42 post.md           # Store and enqueue content
      embedprep queue run --limit 10                # Embed pending items
      embedprep queue stats                         # Queue health
    """
    ctx.ensure_object(dict)

    if no_color:
        ctx.obj["console"] = Console(force_terminal=False, no_color=True)
    else:
        ctx.obj["console"] = console

    if verbose:
        logging.getLogger().setLevel(logging.INFO)
        logging.getLogger("embedprep").setLevel(logging.DEBUG)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path


# Import and register commands at module level to support testing
from .commands import config, preprocess, queue  # noqa: E402

cli.add_command(preprocess.preprocess)
cli.add_command(config.config)
cli.add_command(queue.queue)


def main() -> None:
    """Main entry point for the CLI application"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
