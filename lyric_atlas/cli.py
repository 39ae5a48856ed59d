from __future__ import annotations

import json
from pathlib import Path

import typer

from lyric_atlas.app import running
from lyric_atlas.config import load_config
from lyric_atlas.errors import ConfigurationError
from lyric_atlas.formats import ALLOWED_FORMATS, default_fallback_order, filter_lyric_lines
from lyric_atlas.logging_setup import setup_logging
from lyric_atlas.sources.types import LyricsFound, MetadataFound

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _dump(data: dict) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.command()
def search(
    track_id: str = typer.Argument(..., help="Track id"),
    fixed_version: str | None = typer.Option(None, "--fixed-version", "-f", help="Only this format (ttml|yrc|lrc|...)"),
    fallback: str | None = typer.Option(None, "--fallback", help="Comma-separated fallback order, e.g. lrc,yrc"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Resolve lyrics for a track id (repository first, external API as fallback).
    """
    setup_logging(debug)
    try:
        cfg = load_config()
        with running(cfg) as rt:
            result = rt.service.resolve(track_id, fixed_format=fixed_version, fallback_order=fallback)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    if json_output:
        _dump(result.to_dict())
    elif isinstance(result, LyricsFound):
        typer.echo(f"# format={result.format} source={result.source}")
        typer.echo(result.content)
        if result.translation:
            typer.echo("# translation")
            typer.echo(result.translation)
        if result.romaji:
            typer.echo("# romaji")
            typer.echo(result.romaji)
    else:
        typer.echo(f"Not found ({result.status_code}): {result.error}", err=True)

    if not isinstance(result, LyricsFound):
        raise typer.Exit(code=1)


@app.command()
def metadata(
    track_id: str = typer.Argument(..., help="Track id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """List which lyric formats exist for a track."""
    setup_logging(debug)
    try:
        cfg = load_config()
        with running(cfg) as rt:
            result = rt.service.metadata(track_id)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    if json_output:
        _dump(result.to_dict())
    elif isinstance(result, MetadataFound):
        typer.echo(f"formats={','.join(result.available_formats)}")
        typer.echo(f"translation={'yes' if result.has_translation else 'no'}")
        typer.echo(f"romaji={'yes' if result.has_romaji else 'no'}")
    else:
        typer.echo(f"Not found ({result.status_code}): {result.error}", err=True)

    if not isinstance(result, MetadataFound):
        raise typer.Exit(code=1)


@app.command()
def formats():
    """Show valid formats and the default fallback order."""
    typer.echo(f"formats={','.join(ALLOWED_FORMATS)}")
    typer.echo(f"default_fallback=ttml,{','.join(default_fallback_order())}")


@app.command(name="filter")
def filter_cmd(lyric_path: Path):
    """Print only the timestamped lines of a lyric file."""
    text = lyric_path.read_text(encoding="utf-8")
    kept = filter_lyric_lines(text)
    if kept is None:
        typer.echo("No timestamped lines found", err=True)
        raise typer.Exit(code=1)
    typer.echo(kept)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
