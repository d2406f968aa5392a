"""
Embedding queue commands backed by the local SQLite store
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from ...ingestion.dispatcher import (
    DEFAULT_CLAIM_LIMIT, DEFAULT_LEASE_SECONDS, DispatchSummary, QueueDispatcher
)
from ...ingestion.monitoring import MAX_RETRY_ATTEMPTS
from ...models.embedding_models import QueuePriority
from ...models.preprocessing_models import EnrichmentContext, TargetType
from ..ui.display import create_error_table, create_quality_panel, create_queue_panel
from ..utils.async_runner import async_command
from ..utils.runtime import Runtime, load_settings

logger = logging.getLogger(__name__)

TARGET_TYPE = click.Choice([t.value for t in TargetType])


@click.group()
def queue() -> None:
    """Manage the embedding queue."""
    pass


@queue.command()
@click.argument("target_type", type=TARGET_TYPE)
@click.argument("target_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", help="Parent title passed to the judge")
@click.option("--category", help="Parent category passed to the judge")
@click.option("--tag", "tags", multiple=True, help="Content tag (repeatable)")
@click.option(
    "--priority", type=click.Choice([p.value for p in QueuePriority]),
    default=QueuePriority.NORMAL.value, show_default=True,
)
@click.pass_context
@async_command
async def add(
    ctx: click.Context,
    target_type: str,
    target_id: str,
    file: Path,
    title: Optional[str],
    category: Optional[str],
    tags: Tuple[str, ...],
    priority: str,
) -> None:
    """Store FILE as content for TARGET_TYPE/TARGET_ID and enqueue it."""
    console: Console = ctx.obj["console"]
    target = TargetType(target_type)

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        await runtime.content_source.add_content(
            target,
            target_id,
            file.read_text(encoding="utf-8"),
            EnrichmentContext(
                target_type=target, target_id=target_id,
                parent_title=title, category=category, tags=tuple(tags),
            ),
        )
        await runtime.queue_store.enqueue(target, target_id, QueuePriority(priority))

    console.print(f"[green]Queued {target.value}/{target_id}[/green]")


@queue.command()
@click.argument("target_type", type=TARGET_TYPE)
@click.argument("target_id")
@click.option(
    "--priority", type=click.Choice([p.value for p in QueuePriority]),
    default=QueuePriority.NORMAL.value, show_default=True,
)
@click.pass_context
@async_command
async def enqueue(ctx: click.Context, target_type: str, target_id: str, priority: str) -> None:
    """Re-queue already stored content as pending."""
    console: Console = ctx.obj["console"]

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        await runtime.queue_store.enqueue(TargetType(target_type), target_id, QueuePriority(priority))

    console.print(f"[green]Queued {target_type}/{target_id}[/green]")


async def _watch_cycle(dispatcher: QueueDispatcher, console: Console) -> None:
    """One --watch dispatch; a failing cycle is reported and the loop carries on."""
    try:
        summary = await dispatcher.dispatch(source="cron")
    except Exception as e:
        logger.error(f"Dispatch cycle failed: {e}", exc_info=True)
        console.print(f"[red]Dispatch cycle failed: {e}[/red]")
        return

    if summary.claimed:
        _print_summary(console, summary)


def _print_summary(console: Console, summary: DispatchSummary) -> None:
    for output in summary.results:
        style = "green" if output.success else "red"
        detail = f" - {output.error}" if output.error else ""
        console.print(
            f"[{style}]{output.outcome.value}[/{style}] "
            f"{output.chunks_embedded}/{output.chunks_qualified} embedded{detail}"
        )

    console.print(
        f"\nProcessed {summary.claimed} items: "
        f"[green]{summary.succeeded} succeeded[/green], [red]{summary.failed} failed[/red]"
    )


@queue.command()
@click.option("--limit", default=DEFAULT_CLAIM_LIMIT, show_default=True, help="Items claimed per run")
@click.option("--lease", default=DEFAULT_LEASE_SECONDS, show_default=True, help="Lease length in seconds")
@click.option("--run-id", help="Identifier used in log lines")
@click.option("--watch", is_flag=True, help="Keep dispatching until interrupted")
@click.option("--interval", default=30.0, show_default=True, help="Seconds between dispatch cycles with --watch")
@click.pass_context
@async_command
async def run(
    ctx: click.Context,
    limit: int,
    lease: int,
    run_id: Optional[str],
    watch: bool,
    interval: float,
) -> None:
    """
    Claim pending items and embed them.

    With --watch the command keeps dispatching every --interval seconds and
    reloads the override document whenever the file changes.
    """
    console: Console = ctx.obj["console"]

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        dispatcher = runtime.build_dispatcher(limit, lease)

        if watch:
            runtime.watch_config()
            console.print(f"[blue]Dispatching every {interval:g}s, press Ctrl+C to stop[/blue]")
            while True:
                await _watch_cycle(dispatcher, console)
                await asyncio.sleep(interval)

        with console.status("Processing queue..."):
            summary = await dispatcher.dispatch(source="manual", run_id=run_id)

    if summary.claimed == 0:
        console.print("[yellow]Nothing to process[/yellow]")
        return

    _print_summary(console, summary)
    if summary.failed:
        ctx.exit(1)


@queue.command()
@click.option("--errors", "error_limit", default=10, show_default=True, help="Error log entries shown")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.pass_context
@async_command
async def stats(ctx: click.Context, error_limit: int, as_json: bool) -> None:
    """Show queue counts, throughput, recent errors and embedding quality."""
    console: Console = ctx.obj["console"]

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        snapshot = await runtime.monitor.get_monitoring_snapshot(error_limit)
        quality = await runtime.monitor.get_quality_metrics()
        failed_samples = await runtime.monitor.get_failed_samples()

    if as_json:
        click.echo(json.dumps(
            {
                **snapshot.to_dict(),
                "quality": quality.to_dict(),
                "failed_samples": [sample.to_dict() for sample in failed_samples],
            },
            ensure_ascii=False,
            indent=2,
        ))
        return

    console.print(create_queue_panel(snapshot))
    console.print(create_quality_panel(quality))
    if snapshot.error_logs:
        console.print(create_error_table(snapshot))


@queue.command()
@click.option("--max-attempts", default=MAX_RETRY_ATTEMPTS, show_default=True)
@click.pass_context
@async_command
async def retry(ctx: click.Context, max_attempts: int) -> None:
    """Move failed items with attempts below the limit back to pending."""
    console: Console = ctx.obj["console"]

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        retried = await runtime.monitor.retry_failed(max_attempts)

    console.print(f"[green]Retried {retried} items[/green]")


@queue.command()
@click.confirmation_option(prompt="Delete all failed queue items?")
@click.pass_context
@async_command
async def purge(ctx: click.Context) -> None:
    """Delete failed queue items."""
    console: Console = ctx.obj["console"]

    async with Runtime(load_settings(), ctx.obj.get("config_path")) as runtime:
        purged = await runtime.monitor.purge_failed()

    console.print(f"[green]Purged {purged} items[/green]")
