"""Utility subpackages: shapefile ingestion, spatial lookup and the capture queue."""
