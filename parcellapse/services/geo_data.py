"""Parcel, cropping year and photo queries against the record store."""

from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger

from parcellapse.models import CroppingYear, Parcel, PhotoLocation
from parcellapse.services.protocols import RecordQuery, RecordStore
from parcellapse.utils.spatial.cluster import CLUSTER_TOLERANCE_DEG

PARCELS_TABLE = "parcels"
PHOTOS_TABLE = "photos"
YEARS_TABLE = "cropping_years"

MIN_CROPPING_YEAR = 2000
MAX_CROPPING_YEAR = 2100


class GeoDataService:
    """
    Query surface shared by the capture, map and management flows.

    Parameters
    ----------
    records : RecordStore
        Relational store holding the ``parcels``, ``photos`` and
        ``cropping_years`` tables.
    fetch_timeout : float
        Seconds before the bulk photo fetch gives up and degrades.
    chunk_size : int
        Default number of parcels written per insert call.
    """

    def __init__(
        self,
        records: RecordStore,
        fetch_timeout: float = 10.0,
        chunk_size: int = 100,
    ):
        self.records = records
        self.fetch_timeout = fetch_timeout
        self.chunk_size = chunk_size

    async def fetch_parcels(self, year: int) -> list[Parcel]:
        """
        Fetch the parcel set of one cropping year.

        Raises
        ------
        asyncio.TimeoutError
            Raised when the store does not answer within ``fetch_timeout``.
        """
        rows = await asyncio.wait_for(
            self.records.select_where(PARCELS_TABLE, RecordQuery(equals={"year": year})),
            timeout=self.fetch_timeout,
        )
        return [Parcel.from_record(row) for row in rows]

    async def insert_parcels(
        self, parcels: Sequence[Parcel], chunk_size: int | None = None
    ) -> list[Parcel]:
        """
        Insert parcels in fixed-size chunks.

        Parameters
        ----------
        parcels : Sequence[Parcel]
            Parcels to store.
        chunk_size : int, optional
            Rows per chunk; defaults to the service setting.

        Returns
        -------
        list[Parcel]
            Stored parcels carrying their assigned ids.

        Notes
        -----
        Each chunk is one batch insert. The first failing chunk propagates
        its error after the chunks written before it are deleted again, so a
        year never keeps a partial parcel set.
        """
        size = chunk_size or self.chunk_size
        stored: list[Parcel] = []
        for start in range(0, len(parcels), size):
            chunk = [parcel.to_record() for parcel in parcels[start : start + size]]
            try:
                rows = await self.records.insert_records(PARCELS_TABLE, chunk)
            except Exception as e:
                logger.error(f"Error inserting parcel chunk {start // size}: {e}")
                await self._discard_parcels(stored)
                raise
            stored.extend(Parcel.from_record(row) for row in rows)
        logger.info(f"Inserted {len(stored)} parcels")
        return stored

    async def _discard_parcels(self, parcels: Sequence[Parcel]) -> None:
        for parcel in parcels:
            try:
                await self.records.delete_where(
                    PARCELS_TABLE, RecordQuery(equals={"id": parcel.id})
                )
            except Exception as e:
                logger.error(f"Failed to roll back parcel {parcel.id}: {e}")
                return
        if parcels:
            logger.warning(f"Rolled back {len(parcels)} parcels from earlier chunks")

    async def fetch_cropping_years(self) -> list[CroppingYear]:
        """Fetch every cropping year, newest first."""
        rows = await self.records.select_where(
            YEARS_TABLE, RecordQuery(order_by="year", descending=True)
        )
        return [CroppingYear.from_record(row) for row in rows]

    async def create_cropping_year(self, year: int) -> CroppingYear:
        """
        Create an inactive cropping year.

        Raises
        ------
        ValueError
            Raised when the year is outside 2000-2100 or already exists.
        """
        if not MIN_CROPPING_YEAR <= year <= MAX_CROPPING_YEAR:
            raise ValueError(
                f"cropping year must be between {MIN_CROPPING_YEAR} and {MAX_CROPPING_YEAR}"
            )
        existing = await self.records.select_where(
            YEARS_TABLE, RecordQuery(equals={"year": year})
        )
        if existing:
            raise ValueError(f"cropping year {year} already exists")
        row = await self.records.insert_record(YEARS_TABLE, {"year": year, "is_active": False})
        logger.info(f"Created cropping year {year}")
        return CroppingYear.from_record(row)

    async def set_active_year(self, year: int) -> None:
        """Mark ``year`` as the only active cropping year."""
        await self.records.update_where(YEARS_TABLE, RecordQuery(), {"is_active": False})
        updated = await self.records.update_where(
            YEARS_TABLE, RecordQuery(equals={"year": year}), {"is_active": True}
        )
        if not updated:
            logger.warning(f"Cropping year {year} does not exist, no year is active")

    @staticmethod
    def resolve_active_year(years: Sequence[CroppingYear]) -> CroppingYear | None:
        """Pick the active year, else the first listed one."""
        for year in years:
            if year.is_active:
                return year
        return years[0] if years else None

    async def fetch_all_photo_locations(self) -> list[PhotoLocation]:
        """
        Fetch every located photo, newest first.

        A timeout or store failure degrades to an empty list so the map
        still renders.
        """
        query = RecordQuery(
            not_null=("latitude", "longitude"),
            order_by="created_at",
            descending=True,
        )
        try:
            rows = await asyncio.wait_for(
                self.records.select_where(PHOTOS_TABLE, query),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Photo location fetch timed out after {self.fetch_timeout}s")
            return []
        except Exception as e:
            logger.error(f"Error fetching photo locations: {e}")
            return []
        logger.info(f"Fetched {len(rows)} photo locations")
        return [PhotoLocation.from_record(row) for row in rows]

    async def fetch_nearest_photo(
        self,
        latitude: float,
        longitude: float,
        tolerance: float = CLUSTER_TOLERANCE_DEG,
    ) -> str | None:
        """
        Return the newest image url inside a bounding box around a point.

        Parameters
        ----------
        latitude, longitude : float
            Box center in degrees.
        tolerance : float
            Half-width of the box in degrees on each axis.

        Returns
        -------
        str | None
            Image url of the most recent photo in the box, or ``None``.
        """
        query = RecordQuery(
            ranges={
                "latitude": (latitude - tolerance, latitude + tolerance),
                "longitude": (longitude - tolerance, longitude + tolerance),
            },
            order_by="created_at",
            descending=True,
            limit=1,
        )
        try:
            rows = await self.records.select_where(PHOTOS_TABLE, query)
        except Exception as e:
            logger.error(f"Error fetching nearest photo: {e}")
            return None
        return rows[0].get("image_url") if rows else None

    async def fetch_user_photos(self, user_id: str) -> list[PhotoLocation]:
        """Fetch the photos uploaded by one user, newest first."""
        rows = await self.records.select_where(
            PHOTOS_TABLE,
            RecordQuery(
                equals={"user_id": user_id},
                not_null=("latitude", "longitude"),
                order_by="created_at",
                descending=True,
            ),
        )
        return [PhotoLocation.from_record(row) for row in rows]
