"""
Preprocess command: run the pipeline over a local file
"""

import json
from pathlib import Path

import click
from rich.console import Console

from ...models.preprocessing_models import PreprocessingInput, TargetType
from ...preprocessing.pipeline import preprocess_and_filter, preprocess_content
from ..ui.display import create_chunk_table, create_metadata_panel
from ..utils.async_runner import async_command
from ..utils.runtime import build_config_manager, load_settings

TARGET_TYPE_CHOICES = [t.value for t in TargetType]


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--type", "target_type", type=click.Choice(TARGET_TYPE_CHOICES), default=TargetType.POST.value,
    show_default=True, help="Content type whose configuration is applied",
)
@click.option("--filter", "filter_failed", is_flag=True, help="Drop failed chunks from the output")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.pass_context
@async_command
async def preprocess(
    ctx: click.Context, file: Path, target_type: str, filter_failed: bool, as_json: bool
) -> None:
    """
    Clean, chunk and quality-gate FILE without embedding it.

    Shows every chunk with its status so configuration changes can be
    checked before content is queued.

    Examples:
      embedprep preprocess post.md
      embedprep preprocess review.txt --type comment --filter
    """
    console: Console = ctx.obj["console"]

    settings = load_settings()
    config_manager = build_config_manager(settings, ctx.obj.get("config_path"))
    target = TargetType(target_type)
    override = await config_manager.get_override_for_type(target)

    raw_content = file.read_text(encoding="utf-8")
    run = preprocess_and_filter if filter_failed else preprocess_content
    result = run(PreprocessingInput(target_type=target, raw_content=raw_content), override)

    if as_json:
        click.echo(json.dumps(
            {
                "chunks": [chunk.to_dict() for chunk in result.chunks],
                "metadata": result.metadata.to_dict(),
            },
            ensure_ascii=False,
            indent=2,
        ))
        return

    console.print(create_metadata_panel(result.metadata))
    if result.chunks:
        console.print(create_chunk_table(result.chunks, title=f"{file.name} ({target.value})"))
    else:
        console.print("[yellow]No chunks produced[/yellow]")
