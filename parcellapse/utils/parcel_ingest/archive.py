"""ZIP archive helpers for shapefile bundles."""

from __future__ import annotations

import io
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import PurePosixPath

from loguru import logger

from parcellapse.exceptions import ArchiveError

SHAPE_EXTENSIONS = (".shp", ".dbf", ".prj", ".cpg")


@dataclass
class ShapeLayer:
    """One shapefile layer: sidecar payloads sharing a basename.

    Parameters
    ----------
    name : str
        Lower-cased entry path without extension, e.g. ``"plots/parcels"``.
    shp : bytes | None
        Shape stream payload.
    dbf : bytes | None
        Attribute table payload.
    prj : bytes | None
        Projection definition payload.
    cpg : bytes | None
        Codepage payload.
    """

    name: str
    shp: bytes | None = None
    dbf: bytes | None = None
    prj: bytes | None = None
    cpg: bytes | None = None


def _is_resource_fork(entry_path: str) -> bool:
    """Return whether the entry is macOS archiver metadata."""
    parts = PurePosixPath(entry_path).parts
    if parts and parts[0] == "__macosx":
        return True
    return PurePosixPath(entry_path).name.startswith("._")


def extract_archive(data: bytes) -> dict[str, bytes]:
    """Decompress shapefile-related entries from a ZIP buffer.

    Parameters
    ----------
    data : bytes
        Raw archive bytes.

    Returns
    -------
    dict[str, bytes]
        Lower-cased relative entry path mapped to entry bytes, limited to
        ``.shp``, ``.dbf``, ``.prj`` and ``.cpg`` entries.

    Raises
    ------
    ArchiveError
        Raised when the buffer is not a readable ZIP archive.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as exc:
        raise ArchiveError(f"could not open archive: {exc}") from exc

    entries: dict[str, bytes] = {}
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            entry_path = info.filename.lower()
            if PurePosixPath(entry_path).suffix not in SHAPE_EXTENSIONS:
                continue
            if _is_resource_fork(entry_path):
                logger.debug(f"Skipping archiver metadata entry {info.filename}")
                continue
            try:
                entries[entry_path] = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as exc:
                raise ArchiveError(f"could not read entry {info.filename}: {exc}") from exc

    logger.debug(f"Extracted {len(entries)} shapefile entries from archive")
    return entries


def group_layers(entries: dict[str, bytes]) -> list[ShapeLayer]:
    """Group extracted entries into layers by shared basename.

    Parameters
    ----------
    entries : dict[str, bytes]
        Output of :func:`extract_archive`.

    Returns
    -------
    list[ShapeLayer]
        Layers that own a ``.shp`` entry, in archive order. Sidecars without a
        shape stream are logged and dropped.
    """
    layers: dict[str, ShapeLayer] = {}
    for entry_path, payload in entries.items():
        path_obj = PurePosixPath(entry_path)
        layer_name = str(path_obj.with_suffix(""))
        layer = layers.setdefault(layer_name, ShapeLayer(name=layer_name))
        setattr(layer, path_obj.suffix.lstrip("."), payload)

    shape_layers = []
    for layer in layers.values():
        if layer.shp is None:
            logger.warning(f"Ignoring sidecar files without .shp for layer {layer.name}")
            continue
        shape_layers.append(layer)
    entry_order = {entry_path: index for index, entry_path in enumerate(entries)}
    shape_layers.sort(key=lambda layer: entry_order[f"{layer.name}.shp"])
    return shape_layers
