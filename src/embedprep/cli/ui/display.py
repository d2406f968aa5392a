"""
Rich display components for preprocessing, config and queue output
"""

from typing import Any, Dict, Iterable

from rich.panel import Panel
from rich.table import Table

from ...ingestion.monitoring import MonitoringSnapshot, QualityMetrics
from ...models.preprocessing_models import (
    PreprocessingMetadata, QualifiedChunk, QualityStatus, TypePreprocessingConfig
)

STATUS_STYLES = {
    QualityStatus.PASSED: "green",
    QualityStatus.INCOMPLETE: "yellow",
    QualityStatus.FAILED: "red",
}

PREVIEW_LENGTH = 60


def _preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= length else flat[: length - 1] + "…"


def create_chunk_table(chunks: Iterable[QualifiedChunk], title: str = "Chunks") -> Table:
    """One row per chunk with its quality classification."""
    table = Table(title=title, show_header=True, header_style="bold blue")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Reason", style="magenta")
    table.add_column("Heading", style="dim")
    table.add_column("Preview")

    for chunk in chunks:
        style = STATUS_STYLES[chunk.quality_status]
        reason = ""
        if chunk.validity_result is not None and chunk.validity_result.reason is not None:
            reason = chunk.validity_result.reason.value

        table.add_row(
            str(chunk.index),
            str(chunk.token_count),
            f"[{style}]{chunk.quality_status.value}[/{style}]",
            f"{chunk.quality_score:.3f}",
            reason,
            chunk.heading_context or "",
            _preview(chunk.text),
        )

    return table


def create_metadata_panel(metadata: PreprocessingMetadata) -> Panel:
    cleaning = metadata.cleaning
    chunking = metadata.chunking
    quality = metadata.quality

    lines = [
        f"Original length: {cleaning['original_length']}",
        f"Cleaned length: {cleaning['cleaned_length']} (ratio {cleaning['cleaning_ratio']:.2f})",
        f"Cleaners: {', '.join(cleaning['cleaners_applied']) or 'none'}",
        "",
        f"Strategy: {chunking.strategy.value}",
        f"Chunks: {chunking.total_chunks} (avg {chunking.average_tokens} tokens)",
        "",
        f"[green]Passed: {quality.passed}[/green]  "
        f"[yellow]Incomplete: {quality.incomplete}[/yellow]  "
        f"[red]Failed: {quality.failed}[/red]",
    ]
    return Panel("\n".join(lines), title="Preprocessing", border_style="blue")


def create_type_config_table(configs: Dict[Any, TypePreprocessingConfig]) -> Table:
    """Resolved per-type configuration side by side."""
    table = Table(title="Preprocessing Configuration", show_header=True, header_style="bold blue")
    table.add_column("Setting", style="cyan", no_wrap=True)
    for target_type in configs:
        table.add_column(target_type.value, style="green")

    rows = [
        ("target_size", lambda c: c.chunking.target_size),
        ("overlap", lambda c: c.chunking.overlap),
        ("min_size", lambda c: c.chunking.min_size),
        ("max_size", lambda c: c.chunking.max_size),
        ("strategy", lambda c: c.chunking.strategy.value),
        ("headings_as_boundary", lambda c: c.chunking.use_headings_as_boundary),
        ("min_length", lambda c: c.quality.min_length),
        ("max_length", lambda c: c.quality.max_length),
        ("min_quality_score", lambda c: c.quality.min_quality_score),
        ("max_noise_ratio", lambda c: c.quality.max_noise_ratio),
        ("remove_markdown", lambda c: c.cleaning.remove_markdown),
        ("preserve_headings", lambda c: c.cleaning.preserve_heading_structure),
    ]
    for name, getter in rows:
        table.add_row(name, *(str(getter(config)) for config in configs.values()))

    return table


def create_settings_table(settings: Dict[str, Any]) -> Table:
    table = Table(title="Settings", show_header=True, header_style="bold blue")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    for key, value in settings.items():
        # Mask sensitive values
        if "key" in key.lower() and value:
            display_value = "***masked***"
        else:
            display_value = "not set" if value is None else str(value)
        table.add_row(key, display_value)

    return table


def create_queue_panel(snapshot: MonitoringSnapshot) -> Panel:
    queue = snapshot.queue
    throughput = snapshot.throughput
    avg = (
        f"{throughput.avg_processing_time_ms}ms"
        if throughput.avg_processing_time_ms is not None else "n/a"
    )

    lines = [
        f"Pending: {queue.pending}",
        f"Processing: {queue.processing}",
        f"[green]Completed: {queue.completed}[/green]",
        f"[red]Failed: {queue.failed}[/red]",
        f"Total: {queue.total}",
        "",
        f"Completed last hour: {throughput.last_1h}",
        f"Completed last 24h: {throughput.last_24h}",
        f"Average processing time: {avg}",
    ]
    return Panel("\n".join(lines), title="Embedding Queue", border_style="blue")


def create_error_table(snapshot: MonitoringSnapshot) -> Table:
    table = Table(title="Recent Errors", show_header=True, header_style="bold red")
    table.add_column("Target", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Error")

    for log in snapshot.error_logs:
        table.add_row(f"{log.target_type.value}/{log.target_id}", str(log.attempts), log.error_message)

    return table


def create_quality_panel(metrics: QualityMetrics) -> Panel:
    average = f"{metrics.average_score:.3f}" if metrics.average_score is not None else "n/a"
    lines = [
        f"Embeddings: {metrics.total_embeddings}",
        f"[green]Passed: {metrics.passed_count}[/green]",
        f"[yellow]Incomplete: {metrics.incomplete_count}[/yellow]",
        f"[red]Failed: {metrics.failed_count}[/red]",
        f"Average score: {average}",
        f"Pass rate: {metrics.pass_rate:.1%}",
    ]
    return Panel("\n".join(lines), title="Embedding Quality", border_style="green")
