"""Typer CLI entrypoint for parcellapse."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from parcellapse.config import Settings, load_settings
from parcellapse.core.capture_service import open_queue
from parcellapse.core.parcel_ingestion import ParcelIngestionPipeline
from parcellapse.exceptions import (
    ArchiveError,
    ConfigError,
    DecodeError,
    IngestionError,
    QueueError,
)
from parcellapse.log import configure_logging
from parcellapse.models import Coordinate, utc_now
from parcellapse.utils.spatial import parcels_to_geodataframe

EXIT_SUCCESS = 0
EXIT_INGEST_ERROR = 2
EXIT_IO_ERROR = 4
EXIT_CONFIG_ERROR = 5


app = typer.Typer(help="Parcel ingestion and offline capture queue")
queue_app = typer.Typer(help="Offline capture queue commands")
app.add_typer(queue_app, name="queue")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a JSON config file (defaults to ./config.json)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override the configured log level",
    ),
) -> None:
    """Load settings and configure logging for every command."""
    try:
        settings = load_settings(config)
    except ConfigError as exc:
        typer.echo(f"Config error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


@app.command("ingest")
def ingest(
    ctx: typer.Context,
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    year: int = typer.Option(..., "--year", "-y", help="Cropping year to tag parcels with"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write parcels to a vector file (.geojson, .gpkg or .shp)",
    ),
) -> None:
    """Decode a shapefile ZIP archive into named parcels."""
    settings = _settings(ctx)
    pipeline = ParcelIngestionPipeline(default_encoding=settings.default_encoding)

    try:
        parcels = pipeline.ingest(archive.read_bytes(), year)
    except ArchiveError as exc:
        typer.echo(f"Could not process archive: {exc}", err=True)
        raise typer.Exit(EXIT_INGEST_ERROR) from exc
    except DecodeError as exc:
        typer.echo(f"Malformed shapefile: {exc}", err=True)
        raise typer.Exit(EXIT_INGEST_ERROR) from exc
    except IngestionError as exc:
        typer.echo(f"Nothing to import: {exc}", err=True)
        raise typer.Exit(EXIT_INGEST_ERROR) from exc

    if not parcels:
        typer.echo("No valid parcels found in the archive", err=True)
        raise typer.Exit(EXIT_INGEST_ERROR)

    for parcel in parcels:
        typer.echo(parcel.name)

    if output is not None:
        frame = parcels_to_geodataframe(parcels).drop(columns="id")
        try:
            frame.to_file(output)
        except OSError as exc:
            typer.echo(f"Failed to write {output}: {exc}", err=True)
            raise typer.Exit(EXIT_IO_ERROR) from exc
        logger.info(f"Wrote {len(parcels)} parcels to {output}")


@queue_app.command("list")
def queue_list(ctx: typer.Context) -> None:
    """Show pending captures, oldest first."""
    queue = open_queue(_settings(ctx))
    try:
        captures = asyncio.run(queue.list())
    except QueueError as exc:
        typer.echo(f"Queue error: {exc}", err=True)
        raise typer.Exit(EXIT_IO_ERROR) from exc

    for capture in captures:
        coordinate = capture.coordinate
        typer.echo(
            f"{capture.id}\t{coordinate.latitude:.6f}\t{coordinate.longitude:.6f}"
            f"\t{capture.image_path}"
        )
    typer.echo(f"{len(captures)} pending", err=True)


@queue_app.command("add")
def queue_add(
    ctx: typer.Context,
    image: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    lat: float = typer.Option(..., "--lat", help="Latitude in decimal degrees"),
    lon: float = typer.Option(..., "--lon", help="Longitude in decimal degrees"),
) -> None:
    """Move an image into the queue with its coordinate."""
    queue = open_queue(_settings(ctx))
    coordinate = Coordinate(latitude=lat, longitude=lon, timestamp=utc_now())
    try:
        length = asyncio.run(queue.enqueue(image, coordinate))
    except QueueError as exc:
        typer.echo(f"Queue error: {exc}", err=True)
        raise typer.Exit(EXIT_IO_ERROR) from exc
    typer.echo(f"{length} pending")
