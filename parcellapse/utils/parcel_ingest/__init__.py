"""Shapefile bundle ingestion submodule.

Re-exports public API from archive and decode modules.
"""

from parcellapse.utils.parcel_ingest.archive import (
    SHAPE_EXTENSIONS,
    ShapeLayer,
    extract_archive,
    group_layers,
)
from parcellapse.utils.parcel_ingest.decode import (
    decode_attributes,
    decode_geometry,
    projection_from_prj,
    resolve_codepage,
)

__all__ = [
    "SHAPE_EXTENSIONS",
    "ShapeLayer",
    "decode_attributes",
    "decode_geometry",
    "extract_archive",
    "group_layers",
    "projection_from_prj",
    "resolve_codepage",
]
