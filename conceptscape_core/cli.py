"""Conceptscape CLI - Main entry point."""

import asyncio
import json
import sys
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from . import __version__
from .catalog.registry import SceneCatalog, default_catalog, load_catalog
from .config import Settings, get_settings
from .core.logging import configure_logging
from .errors import CapturePermissionDenied, ConceptscapeError, TranscriptionChannelError
from .orchestrator.factory import create_orchestrator
from .orchestrator.models import OrchestrationResult, ProgressEvent

console = Console()


# =============================================================================
# Output
# =============================================================================


def print_json(data: Any) -> None:
    json_str = json.dumps(data, indent=2, default=str)
    console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))


def print_yaml(data: Any) -> None:
    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    console.print(Syntax(yaml_str, "yaml", theme="monokai", line_numbers=False))


def print_result(result: OrchestrationResult, output: str) -> None:
    data = result.to_dict()
    if output == "json":
        print_json(data)
        return
    if output == "yaml":
        print_yaml(data)
        return

    content = result.educational_content
    table = Table(title=f"Scene: {result.concept}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Asset", result.asset_url)
    table.add_row("Source", result.source_of_asset.value)
    table.add_row("Objectives", "\n".join(f"- {o}" for o in content.learning_objectives) or "-")
    table.add_row("Key facts", str(len(content.key_facts)))
    table.add_row("Subtitle lines", str(len(result.subtitle_timeline)))
    table.add_row("Narration audio", "yes" if result.narration_audio else "no")
    console.print(table)

    if result.narration_script:
        console.print(f"\n[bold]Narration[/bold]\n{result.narration_script}")
    for warning in result.warnings:
        console.print(f"[yellow]![/yellow] {warning}")


def _catalog(settings: Settings, catalog_path: Optional[str]) -> SceneCatalog:
    path = catalog_path or settings.catalog_path
    if path:
        return load_catalog(path, local_namespace=settings.local_asset_namespace)
    return default_catalog(local_namespace=settings.local_asset_namespace)


# =============================================================================
# Commands
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="conceptscape")
@click.option("--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table",
              help="Output format")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(ctx: click.Context, output: str, log_level: Optional[str]):
    """Conceptscape - explore any concept as a 3D scene.

    \b
    Examples:
      conceptscape lookup "ancient rome"
      conceptscape explore photosynthesis
      conceptscape listen
    """
    ctx.ensure_object(dict)
    settings = get_settings()
    configure_logging(
        level=(log_level or settings.log_level).upper(),
        format=settings.log_format,
        service_name=settings.service_name,
    )
    ctx.obj["settings"] = settings
    ctx.obj["output"] = output


@cli.command("serve")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP service."""
    import uvicorn

    settings: Settings = ctx.obj["settings"]
    uvicorn.run(
        "conceptscape_core.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@cli.command("lookup")
@click.argument("concept")
@click.option("--catalog", "catalog_path", type=click.Path(exists=True, dir_okay=False),
              help="Catalog YAML file")
@click.pass_context
def lookup(ctx: click.Context, concept: str, catalog_path: Optional[str]):
    """Show which catalog scene a concept maps to."""
    settings: Settings = ctx.obj["settings"]
    catalog = _catalog(settings, catalog_path)
    match = catalog.lookup(concept)
    entry = match.entry

    data = {
        "id": entry.id,
        "title": entry.title,
        "match": match.match_type.value,
        "score": match.score,
        "weak": match.is_weak,
        "asset": entry.primary_asset_ref,
        "local": catalog.is_local(entry),
    }
    if ctx.obj["output"] == "json":
        print_json(data)
        return
    if ctx.obj["output"] == "yaml":
        print_yaml(data)
        return

    table = Table(title=f"Catalog match for '{concept}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)
    if match.is_weak:
        console.print("[yellow]![/yellow] No catalog entry matched; this is the default scene.")


async def _explore(settings: Settings, concept: str) -> OrchestrationResult:
    orchestrator = create_orchestrator(settings)

    def on_progress(event: ProgressEvent) -> None:
        console.print(f"[dim]{event.progress:>3}%[/dim] {event.stage.value}: {event.message}")

    try:
        return await orchestrator.orchestrate(concept, on_progress=on_progress)
    finally:
        await orchestrator.close()


@cli.command("explore")
@click.argument("concept")
@click.option("--narration/--no-narration", default=None, help="Synthesize narration audio")
@click.option("--audio-out", type=click.Path(dir_okay=False, writable=True),
              help="Write narration MP3 here")
@click.pass_context
def explore(ctx: click.Context, concept: str, narration: Optional[bool], audio_out: Optional[str]):
    """Generate a scene for a concept."""
    settings: Settings = ctx.obj["settings"]
    if narration is not None:
        settings = settings.model_copy(update={"narration_enabled": narration})

    try:
        result = asyncio.run(_explore(settings, concept))
    except ConceptscapeError as e:
        console.print(f"[red]✗[/red] {e.message}")
        sys.exit(1)

    print_result(result, ctx.obj["output"])
    if audio_out and result.narration_audio:
        with open(audio_out, "wb") as f:
            f.write(result.narration_audio)
        console.print(f"[green]✓[/green] Narration written to {audio_out}")


async def _listen(settings: Settings, timeout: Optional[float]) -> Optional[str]:
    from .voice.capture import SoundDeviceCapture
    from .voice.deepgram import DeepgramChannel
    from .voice.extractor import SpeechIntentExtractor

    def on_partial(text: str) -> None:
        console.print(f"[dim]… {text}[/dim]")

    def on_error(error: TranscriptionChannelError) -> None:
        console.print(f"[yellow]![/yellow] {error.message}")

    extractor = SpeechIntentExtractor(
        channel_factory=lambda: DeepgramChannel(settings=settings),
        capture_factory=lambda: SoundDeviceCapture(
            device=settings.capture_device,
            blocksize=settings.capture_blocksize,
        ),
        on_partial=on_partial,
        on_error=on_error,
    )

    await extractor.start()
    console.print('[bold]Listening...[/bold] say "show me <concept>"')
    try:
        return await extractor.wait_for_command(timeout)
    finally:
        await extractor.stop()


@cli.command("listen")
@click.option("--timeout", type=float, default=None, help="Give up after N seconds")
@click.option("--explore/--no-explore", "run_explore", default=True,
              help="Generate the scene once a command is heard")
@click.pass_context
def listen(ctx: click.Context, timeout: Optional[float], run_explore: bool):
    """Capture a spoken "show me <concept>" command."""
    settings: Settings = ctx.obj["settings"]
    if not settings.deepgram_api_key:
        console.print("[red]✗[/red] DEEPGRAM_API_KEY is not set")
        sys.exit(1)

    try:
        command = asyncio.run(_listen(settings, timeout))
    except CapturePermissionDenied as e:
        console.print(f"[red]✗[/red] {e.message}")
        sys.exit(1)
    except TranscriptionChannelError as e:
        console.print(f"[red]✗[/red] {e.message}")
        sys.exit(1)
    except asyncio.TimeoutError:
        console.print("[yellow]No command heard[/yellow]")
        sys.exit(1)

    if not command:
        console.print("[yellow]No command heard[/yellow]")
        sys.exit(1)

    console.print(f"[green]✓[/green] Heard: [bold]{command}[/bold]")
    if run_explore:
        ctx.invoke(explore, concept=command, narration=None, audio_out=None)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
