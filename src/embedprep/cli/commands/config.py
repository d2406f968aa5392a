"""
Configuration inspection commands
"""

import click
from rich.console import Console

from ...models.preprocessing_models import TargetType
from ..ui.display import create_settings_table, create_type_config_table
from ..utils.async_runner import async_command
from ..utils.runtime import build_config_manager, load_settings


@click.group()
def config() -> None:
    """Inspect resolved configuration."""
    pass


@config.command()
@click.option(
    "--type", "target_type", type=click.Choice([t.value for t in TargetType]),
    help="Show a single content type",
)
@click.pass_context
@async_command
async def show(ctx: click.Context, target_type: str) -> None:
    """Show per-type preprocessing configuration after overrides."""
    console: Console = ctx.obj["console"]

    settings = load_settings()
    config_manager = build_config_manager(settings, ctx.obj.get("config_path"))

    if target_type:
        target = TargetType(target_type)
        configs = {target: await config_manager.get_config_for_type(target)}
    else:
        configs = await config_manager.get_all_configs()

    console.print(create_type_config_table(configs))


@config.command()
@click.pass_context
def settings(ctx: click.Context) -> None:
    """Show settings read from EMBEDPREP_* environment variables."""
    console: Console = ctx.obj["console"]
    console.print(create_settings_table(load_settings().model_dump()))
