from __future__ import annotations

from pathlib import Path

import anyio
import msgspec
import typer
from anyio.streams.file import FileReadStream

from . import __version__
from .config import ConfigError
from .decoder import StreamDecoder
from .invocation import ClaudeInvocation
from .logging import bind_run_context, clear_context, get_logger, setup_logging
from .model import Completed, StreamEvent
from .render import EventRenderer, format_usage
from .settings import StreamSettings, load_settings, load_settings_if_exists
from .utils.streams import feed_decoder

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Decode Claude Code stream-json output.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    pass


def event_to_json(event: StreamEvent) -> bytes:
    payload = {"event": type(event).__name__, **msgspec.to_builtins(event)}
    return msgspec.json.encode(payload)


async def _replay(path: Path, as_json: bool) -> int:
    decoder = StreamDecoder()
    renderer = EventRenderer()
    completed: list[Completed] = []

    def on_event(event: StreamEvent) -> None:
        if as_json:
            typer.echo(event_to_json(event).decode("utf-8"))
            return
        for line in renderer.feed(event):
            typer.echo(line)

    decoder.subscribe_all(on_event)
    decoder.subscribe(Completed, completed.append)
    stream = await FileReadStream.from_path(path)
    async with stream:
        count = await feed_decoder(decoder, stream)
    if not as_json:
        for line in renderer.flush():
            typer.echo(line)
    logger.debug(
        "replay.done",
        path=str(path),
        lines=count,
        turns=len(completed),
        session_id=decoder.session_id,
    )
    if completed and not as_json:
        typer.echo(f"total: {format_usage(completed[-1].result)}")
    return count


@app.command()
def replay(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Recorded stream-json transcript (one JSON object per line).",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print decoded events as JSON lines.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log every decoded line.",
    ),
) -> None:
    """Feed a recorded transcript through the decoder and print its events."""
    setup_logging(debug=debug)
    bind_run_context(transcript=path.name)
    try:
        anyio.run(_replay, path, as_json)
    except OSError as e:
        typer.echo(f"Failed to read {path}: {e}", err=True)
        raise typer.Exit(code=1) from None
    finally:
        clear_context()


@app.command()
def command(
    prompt: str = typer.Argument(..., help="Prompt text for the turn."),
    resume: str | None = typer.Option(
        None,
        "--resume",
        "-r",
        help="Session id of the turn to follow up on.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Config file (defaults to ~/.claude-stream/config.toml when present).",
    ),
) -> None:
    """Print the CLI command line for a turn."""
    setup_logging()
    try:
        if config is not None:
            settings, _ = load_settings(config)
        else:
            loaded = load_settings_if_exists()
            settings = loaded[0] if loaded is not None else StreamSettings()
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1) from None
    invocation = ClaudeInvocation.from_settings(settings.claude)
    typer.echo(invocation.command_line(prompt, resume=resume))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
