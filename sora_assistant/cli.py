"""
Command-line interface for Sora Assistant.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="sora-assistant",
    help="Voice and button activated visual assistance",
    no_args_is_help=True,
)

console = Console()

DEFAULT_CONFIG_PATH = Path("configs/sora.yaml")


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path]):
    """Load the config: explicit --config > configs/sora.yaml > defaults."""
    from sora_assistant.config import Config, set_config

    if config_file is not None and not config_file.exists():
        console.print(f"[red]Error: Config file not found: {config_file}[/red]")
        raise typer.Exit(1)

    path = config_file or DEFAULT_CONFIG_PATH
    if path.exists():
        try:
            config = Config.from_yaml(path)
        except ValueError as e:
            console.print(f"[red]Error: Invalid config {path}: {e}[/red]")
            raise typer.Exit(1)
        console.print(f"[dim]Loaded config: {path}[/dim]")
    else:
        config = Config()

    set_config(config)
    return config


def _apply_overrides(config, model: Optional[str], brief: bool, camera_device: Optional[int]) -> None:
    """CLI values override YAML values when given."""
    from sora_assistant.analysis.prompts import PromptVariant

    if model:
        config.analysis.model = model
    if brief:
        config.analysis.prompt_variant = PromptVariant.BRIEF
    if camera_device is not None:
        config.camera.device = camera_device


@app.command()
def run(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Gemini model name"),
    brief: bool = typer.Option(False, "--brief", help="Use the short prompt (faster replies)"),
    camera_device: Optional[int] = typer.Option(None, "--camera", help="Camera device index"),
    no_voice: bool = typer.Option(False, "--no-voice", help="Disable voice activation (keyboard only)"),
    no_speech: bool = typer.Option(False, "--no-speech", help="Print replies instead of speaking them"),
    chimes: bool = typer.Option(False, "--chimes", help="Play wake/error chimes"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Start the assistant.

    Say "Hey Sora" or press Enter to describe what the camera sees.
    """
    _setup_logging(verbose)
    config = _load_config(config_file)
    _apply_overrides(config, model, brief, camera_device)
    if chimes:
        config.orchestrator.play_chimes = True

    if not config.analysis.api_key:
        console.print("[red]Error: No Gemini API key configured[/red]")
        console.print("Set SORA_GEMINI_API_KEY (or GEMINI_API_KEY) or analysis.api_key in the config file")
        raise typer.Exit(1)

    from sora_assistant.assistant.controls import HELP_TEXT

    console.print("[bold]Sora Assistant[/bold]\n")
    console.print(f"Model: {config.analysis.model} ({config.analysis.prompt_variant.value} prompt)")
    console.print(f"Camera: device {config.camera.device}")
    if no_voice:
        console.print("Voice: off (keyboard only)")
    else:
        console.print(f"Wake phrases: {', '.join(repr(p) for p in config.orchestrator.wake_phrases)}")
    console.print(f"\n[dim]{HELP_TEXT}[/dim]\n")

    try:
        asyncio.run(_run_assistant(config, voice=not no_voice, speech_backend="none" if no_speech else "pyttsx3"))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")


async def _run_assistant(config, voice: bool, speech_backend: str) -> None:
    from sora_assistant.analysis.client import AnalysisClient
    from sora_assistant.assistant.announce import ConsoleLiveRegion, Notifier
    from sora_assistant.assistant.chimes import ChimePlayer
    from sora_assistant.assistant.controls import KeyboardControls
    from sora_assistant.assistant.core import ActivationOrchestrator
    from sora_assistant.assistant.recognition import (
        ContinuousRecognitionSession,
        create_recognition_engine,
    )
    from sora_assistant.assistant.speech import SpeechOutputSink, create_speech_engine
    from sora_assistant.assistant.vision import Camera, CameraConfig

    camera = Camera(
        CameraConfig(
            device=config.camera.device,
            width=config.camera.width,
            height=config.camera.height,
            jpeg_quality=config.camera.jpeg_quality,
        )
    )
    speech = SpeechOutputSink(create_speech_engine(speech_backend), config.speech)

    recognition = None
    if voice:
        engine = create_recognition_engine(
            backend=config.recognition.backend,
            language=config.recognition.language,
            phrase_time_limit=config.recognition.phrase_time_limit_s,
            device_index=config.recognition.microphone_index,
        )
        recognition = ContinuousRecognitionSession(engine, config.recognition)

    chime_player = ChimePlayer() if config.orchestrator.play_chimes else None

    try:
        async with AnalysisClient(config.analysis) as client:
            orchestrator = ActivationOrchestrator(
                camera,
                client,
                speech,
                recognition=recognition,
                announcer=ConsoleLiveRegion(console),
                notifier=Notifier(console),
                config=config.orchestrator,
                extraction=config.extraction,
                chimes=chime_player,
            )
            await orchestrator.run(controls=KeyboardControls())
    finally:
        speech.close()


@app.command()
def analyze(
    image: Path = typer.Argument(..., help="Image file to analyze"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Gemini model name"),
    brief: bool = typer.Option(False, "--brief", help="Use the short prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Analyze one image file and show the extracted insight."""
    from sora_assistant.analysis.errors import AnalysisError
    from sora_assistant.analysis.extractor import extract_insight
    from sora_assistant.assistant.vision import load_image_file

    _setup_logging(verbose)
    config = _load_config(config_file)
    _apply_overrides(config, model, brief, None)

    if not config.analysis.api_key:
        console.print("[red]Error: No Gemini API key configured (set SORA_GEMINI_API_KEY)[/red]")
        raise typer.Exit(1)

    try:
        frame = load_image_file(image)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[dim]Analyzing {image} ({frame.width}x{frame.height})...[/dim]")

    try:
        response = asyncio.run(_analyze_once(config, frame))
    except AnalysisError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    insight = extract_insight(
        response.raw_text,
        config.extraction.vocabulary(),
        config.extraction.navigation_policy,
    )

    console.print(f"\n[bold]Description[/bold]\n{insight.description}\n")

    table = Table(title="Insight")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Objects", ", ".join(insight.objects) or "-")
    table.add_row("Navigation", insight.navigation_guidance or "-")
    table.add_row("Currency", insight.currency_detection or "-")
    table.add_row("Text", "yes" if insight.text_content else "-")
    table.add_row("Safety", ", ".join(insight.safety_warnings) or "-")
    console.print(table)


async def _analyze_once(config, frame):
    from sora_assistant.analysis.client import AnalysisClient

    async with AnalysisClient(config.analysis) as client:
        return await client.analyze(frame)


@app.command()
def voices(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """List speech synthesis voices."""
    from sora_assistant.assistant.speech import create_speech_engine, select_voice

    config = _load_config(config_file)
    engine = create_speech_engine("pyttsx3")
    if engine is None:
        console.print("[red]Error: Speech synthesis unavailable (pip install pyttsx3)[/red]")
        raise typer.Exit(1)

    try:
        available = engine.voices()
    finally:
        engine.close()

    selected = select_voice(available, config.speech.preferred_voice_names)

    table = Table()
    table.add_column("", width=1)
    table.add_column("Name", style="cyan")
    table.add_column("Language")
    table.add_column("ID", style="dim")

    for voice in available:
        marker = "*" if voice == selected else ""
        table.add_row(marker, voice.name, voice.language or "-", voice.id)

    console.print(table)
    console.print("\n[dim]* voice used for speech[/dim]")


def _module_status(module: str) -> str:
    import importlib.util

    return "[green]installed[/green]" if importlib.util.find_spec(module) else "[red]missing[/red]"


@app.command()
def info(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Show configuration and available components."""
    from sora_assistant import __version__

    config = _load_config(config_file)

    console.print(f"\n[bold]Sora Assistant v{__version__}[/bold]\n")

    table = Table(title="Configuration")
    table.add_column("Property")
    table.add_column("Value")
    table.add_row("Model", config.analysis.model)
    table.add_row("Endpoint", config.analysis.base_url)
    table.add_row("API key", "set" if config.analysis.api_key else "[red]not set[/red]")
    table.add_row("Prompt", config.analysis.prompt_variant.value)
    table.add_row("Camera device", str(config.camera.device))
    table.add_row("Wake phrases", ", ".join(config.orchestrator.wake_phrases))
    console.print(table)

    console.print("\n[bold]Components[/bold]")
    console.print(f"  - Camera (opencv): {_module_status('cv2')}")
    console.print(f"  - Voice recognition (SpeechRecognition): {_module_status('speech_recognition')}")
    console.print(f"  - Microphone (PyAudio): {_module_status('pyaudio')}")
    console.print(f"  - Speech synthesis (pyttsx3): {_module_status('pyttsx3')}")
    console.print(f"  - Chimes (sounddevice): {_module_status('sounddevice')}")
    console.print()


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
