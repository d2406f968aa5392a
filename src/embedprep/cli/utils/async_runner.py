"""
Async execution utilities for CLI commands
"""

import asyncio
import sys
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich.console import Console

from ...models.errors import EmbedPrepError

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def async_command(f: F) -> Callable[..., Any]:
    """
    Decorator to run async functions in CLI context with proper error handling
    """

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return asyncio.run(f(*args, **kwargs))  # type: ignore
        except KeyboardInterrupt:
            Console().print("\n[yellow]Operation interrupted by user[/yellow]")
            sys.exit(130)  # Standard exit code for SIGINT
        except click.exceptions.Exit:
            raise
        except EmbedPrepError as e:
            Console(stderr=True).print(f"[red]{e}[/red]")
            sys.exit(1)

    return wrapper
