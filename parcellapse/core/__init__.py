"""
Core business logic for parcellapse.

Contains:
- Shapefile archive ingestion into parcels
- Offline queue drains
- The capture flow
"""
