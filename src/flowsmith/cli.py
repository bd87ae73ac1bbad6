"""Command line surface for Flowsmith."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from flowsmith.blueprint import Blueprint, Platform, load_blueprint
from flowsmith.codec import encode_base64
from flowsmith.config import Settings, load_settings
from flowsmith.errors import ConfigurationError, FlowsmithError
from flowsmith.logging_utils import configure_logging
from flowsmith.service import VOICES, AutomationStudio, ChatReply, ChatSession
from flowsmith.simulation import DEFAULT_SAMPLE_PAYLOAD, SimulationTrace, StepStatus, sandbox_blueprint

T = TypeVar("T")

app = typer.Typer(
    name="flowsmith",
    help="Describe an automation, get a blueprint.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

_STATUS_STYLES = {StepStatus.SUCCESS: "green", StepStatus.FAILURE: "bold red", StepStatus.SKIPPED: "dim"}


def build_studio(settings: Settings) -> AutomationStudio:
    return AutomationStudio(settings)


def _exit_with_error(exc: FlowsmithError) -> NoReturn:
    logger.debug("cli.failed error_type={} context={}", type(exc).__name__, exc.context)
    console.print(f"[bold red]Error:[/bold red] {exc.user_message}")
    raise typer.Exit(1) from exc


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except FlowsmithError as exc:
        _exit_with_error(exc)


def _prepare(log_level: str | None) -> Settings:
    try:
        settings = load_settings(log_level=log_level)
    except ConfigurationError as exc:
        _exit_with_error(exc)
    configure_logging(profile="cli", level=settings.log_level)
    return settings


def _render_blueprint(blueprint: Blueprint) -> None:
    console.print(f"[bold]Platform:[/bold] [magenta]{blueprint.platform.value}[/magenta]")
    console.print(blueprint.explanation)
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Description")
    for step in blueprint.steps:
        table.add_row(str(step.id), step.kind.value, step.title, step.description)
    console.print(table)
    if blueprint.code_snippet:
        console.print("[bold]Code snippet:[/bold]")
        console.print(blueprint.code_snippet, markup=False, highlight=False)
    for source in blueprint.sources:
        console.print(f"[dim]source:[/dim] {source.title} <{source.uri}>")


def _render_trace(trace: SimulationTrace) -> None:
    style = "green" if not trace.failed_steps else "bold red"
    console.print(f"[{style}]Overall: {trace.overall_status.value}[/{style}]")
    console.print(trace.summary)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Step", justify="right")
    table.add_column("Status")
    table.add_column("Output")
    table.add_column("Reasoning")
    for result in trace.step_results:
        status_style = _STATUS_STYLES[result.status]
        table.add_row(
            str(result.step_id), f"[{status_style}]{result.status.value}[/{status_style}]", result.output, result.reasoning
        )
    console.print(table)


@app.command()
def generate(
    description: str = typer.Argument(..., help="What the automation should do"),  # noqa: B008
    platform: Platform = typer.Option(Platform.ZAPIER, "--platform", "-p", help="Target automation platform"),  # noqa: B008
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the blueprint JSON to this file"),  # noqa: B008
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level"),  # noqa: B008
) -> None:
    """Design an automation blueprint."""
    studio = build_studio(_prepare(log_level))
    blueprint = _run(studio.generate_blueprint(platform, description))
    _render_blueprint(blueprint)
    if output is not None:
        output.write_text(json.dumps(blueprint.to_payload(), indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"[dim]Blueprint written to {output}[/dim]")


@app.command()
def chat(
    message: str | None = typer.Argument(None, help="Ask one question; omit for an interactive session"),  # noqa: B008
    grounded: bool = typer.Option(False, "--grounded", help="Ground answers with web search"),  # noqa: B008
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level"),  # noqa: B008
) -> None:
    """Ask the automation advisor."""
    session = ChatSession(build_studio(_prepare(log_level)), grounded=grounded)
    if message is not None:
        _print_reply(_run(session.send(message)))
        return

    console.print("[bold blue]Flowsmith advisor[/bold blue] - type 'exit' to quit, 'reset' to clear history.")
    while True:
        text = typer.prompt("You", default="", show_default=False).strip()
        if not text:
            continue
        if text.lower() in {"exit", "quit", "q"}:
            break
        if text.lower() == "reset":
            session.reset()
            console.print("[dim]History cleared[/dim]")
            continue
        try:
            _print_reply(_run(session.send(text)))
        except typer.Exit:
            continue


def _print_reply(reply: ChatReply) -> None:
    console.print(f"[bold green]Advisor:[/bold green] {reply.text}", highlight=False)
    for source in reply.sources:
        console.print(f"[dim]source:[/dim] {source.title} <{source.uri}>")


@app.command("analyze-image")
def analyze_image(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file to analyze"),  # noqa: B008
    prompt: str = typer.Option(  # noqa: B008
        "Describe the workflow or diagram in this image.", "--prompt", help="What to ask about the image"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level"),  # noqa: B008
) -> None:
    """Analyze a screenshot or diagram."""
    studio = build_studio(_prepare(log_level))
    mime_type = mimetypes.guess_type(image.name)[0] or "image/jpeg"
    payload = encode_base64(image.read_bytes())
    console.print(_run(studio.analyze_image(payload, prompt, mime_type)), highlight=False)


@app.command()
def speak(
    text: str = typer.Argument(..., help="Text to read aloud"),  # noqa: B008
    voice: str = typer.Option("Kore", "--voice", "-v", help="Prebuilt voice name"),  # noqa: B008
    output: Path = typer.Option(Path("speech.wav"), "--output", "-o", help="Where to write the WAV file"),  # noqa: B008
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level"),  # noqa: B008
) -> None:
    """Synthesize speech to a WAV file."""
    studio = build_studio(_prepare(log_level))
    clip = _run(studio.synthesize_speech(text, voice))
    output.write_bytes(clip.wav)
    console.print(
        f"Wrote {output} ({clip.samples.duration_seconds:.1f}s at {clip.samples.sample_rate} Hz, voice {clip.voice})"
    )


@app.command()
def voices() -> None:
    """List available voices."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Voice")
    table.add_column("Type")
    table.add_column("Description")
    for voice in VOICES:
        table.add_row(voice.name, voice.type, voice.description)
    console.print(table)


@app.command()
def simulate(
    blueprint_file: Path | None = typer.Option(  # noqa: B008
        None, "--blueprint", "-b", exists=True, dir_okay=False, help="Blueprint JSON written by 'generate'"
    ),
    payload_file: Path | None = typer.Option(  # noqa: B008
        None, "--payload", exists=True, dir_okay=False, help="Mock event JSON; defaults to a sample payment event"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level"),  # noqa: B008
) -> None:
    """Dry-run a blueprint against a mock event."""
    studio = build_studio(_prepare(log_level))
    try:
        blueprint = load_blueprint(blueprint_file.read_text(encoding="utf-8")) if blueprint_file else sandbox_blueprint()
    except FlowsmithError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.user_message}")
        raise typer.Exit(1) from exc
    payload_text = (
        payload_file.read_text(encoding="utf-8") if payload_file else json.dumps(DEFAULT_SAMPLE_PAYLOAD, indent=2)
    )
    _render_trace(_run(studio.simulate_blueprint(blueprint, payload_text)))
