from __future__ import annotations

import logging
import time
from pathlib import Path

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from . import __version__
from .cards import card_fields
from .config import load_config
from .gallery import TemplateGallery, count_label
from .presentation import ConsolePresenter
from .store import load_store, reload_store
from .thumbnails import ThumbnailCache

app = typer.Typer(help="template-gallery: template panel thumbnails and sync")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_store_or_exit(store_path: Path):
    try:
        return load_store(store_path)
    except (OSError, ValueError) as exc:
        print(f"[red]Failed to load template store {store_path}: {exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.callback()
def main(
    log_level: str = typer.Option(None, help="Override the configured log level"),
) -> None:
    config = load_config()
    _configure_logging(log_level or config.log_level)


@app.command()
def version() -> None:
    """Print the installed version."""

    print(__version__)


@app.command()
def thumbnail(
    sources: list[Path] = typer.Argument(..., help="Source images"),
    out: Path = typer.Option(
        None, help="Output PNG for a single source (defaults to <source>.thumb.png)"
    ),
    size: int = typer.Option(None, help="Thumbnail edge in pixels"),
) -> None:
    """Derive thumbnails concurrently and save each one as PNG."""

    if out is not None and len(sources) > 1:
        print("[red]--out only applies to a single source[/red]")
        raise typer.Exit(code=2)
    config = load_config()
    if size is not None:
        config.thumbnail_size = size
    cache = ThumbnailCache.from_config(config)
    try:
        images = cache.preload((str(source), source) for source in sources)
    finally:
        cache.close()
    failed = 0
    for source in sources:
        image = images.get(str(source))
        if image is None:
            print(f"[red]Thumbnail generation failed for {source}[/red]")
            failed += 1
            continue
        target = out or source.with_suffix(".thumb.png")
        image.save(target, format="PNG")
        print(f"[green]Wrote {target}[/green] ({image.width}x{image.height})")
    if failed:
        raise typer.Exit(code=1)


@app.command("list")
def list_templates(
    store_path: Path = typer.Argument(..., help="Template store JSON file"),
) -> None:
    """Show the cards a gallery would render for a store file."""

    store = _load_store_or_exit(store_path)
    config = load_config()
    with TemplateGallery(store, ConsolePresenter(quiet=True), config=config) as gallery:
        gallery.show()
        table = Table(title=count_label(len(store.templates)))
        for column in ("Identity", "Name", "Coordinates", "Pixels", "Size", "Enabled"):
            table.add_column(column)
        for handle in gallery.registry.handles():
            fields = card_fields(handle.record, handle.snapshot.enabled)
            table.add_row(
                handle.identity,
                fields["display_name"],
                fields["coords"],
                fields["pixel_count"],
                fields["dimensions"],
                "yes" if fields["enabled"] else "no",
            )
        Console().print(table)


@app.command()
def watch(
    store_path: Path = typer.Argument(..., help="Template store JSON file"),
    interval: float = typer.Option(None, help="Sync interval in seconds"),
    duration: float = typer.Option(0, help="Stop after this many seconds (0 = until Ctrl-C)"),
) -> None:
    """Show the gallery and print changes made to the store file while it runs."""

    store = _load_store_or_exit(store_path)
    config = load_config()
    if interval is not None and interval > 0:
        config.sync_interval_s = interval
    started = time.monotonic()
    with TemplateGallery(store, ConsolePresenter(), config=config) as gallery:
        gallery.show()
        try:
            while not duration or time.monotonic() - started < duration:
                time.sleep(config.sync_interval_s)
                try:
                    reload_store(store, store_path)
                except (OSError, ValueError) as exc:
                    print(f"[yellow]Skipping reload: {exc}[/yellow]")
        except KeyboardInterrupt:
            pass
