# ParcelLapse - Source Package
"""
ParcelLapse: parcel-aware field photo capture for crop timelapses.

This package provides:
- Parcel shapefile bundle ingestion (zip -> named parcel polygons)
- Point-in-parcel resolution and photo location clustering
- An offline-durable capture queue and its sync coordinator
"""

__version__ = "0.1.0"
