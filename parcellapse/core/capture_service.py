"""
Capture Service Core Module.

Implements the shutter flow: resolve the parcel of a fresh photo, upload it
right away when online and fall back to the offline queue otherwise. Also
runs connectivity-gated queue drains against the freshest parcel set.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from loguru import logger

from parcellapse.config import Settings
from parcellapse.core.sync_coordinator import DrainResult, SyncCoordinator
from parcellapse.models import Capture, Coordinate, Parcel, SessionContext
from parcellapse.services.geo_data import GeoDataService
from parcellapse.services.memory import LocalObjectStore
from parcellapse.services.photo_upload import PhotoUploader
from parcellapse.services.protocols import (
    BackupService,
    ObjectStore,
    RecordStore,
    SessionProvider,
)
from parcellapse.utils.capture_queue import (
    JsonFileKeyValueStore,
    LocalFileArea,
    OfflineCaptureQueue,
)
from parcellapse.utils.spatial import (
    CLUSTER_TOLERANCE_DEG,
    PROXIMITY_RADIUS_M,
    PhotoCluster,
    SpatialIndex,
    cluster_photos,
    is_within,
)


def open_queue(settings: Settings) -> OfflineCaptureQueue:
    """Open the on-disk capture queue described by ``settings``."""
    return OfflineCaptureQueue(
        JsonFileKeyValueStore(settings.journal_path),
        LocalFileArea(),
        settings.photos_path,
        queue_key=settings.queue_key,
    )


@dataclass(frozen=True)
class CaptureOutcome:
    """
    Result of one shutter press.

    Parameters
    ----------
    uploaded : bool
        ``True`` when the photo reached the remote store immediately.
    parcel_name : str | None
        Parcel resolved at capture time.
    url : str | None
        Public url of an uploaded photo.
    queue_length : int | None
        Queue length after a fallback enqueue.
    error : str | None
        Upload failure that caused the fallback, if any.
    """

    uploaded: bool
    parcel_name: str | None
    url: str | None = None
    queue_length: int | None = None
    error: str | None = None


class CaptureService:
    """
    Coordinate capture, upload and queueing for one device.

    Parameters
    ----------
    queue : OfflineCaptureQueue
        Durable fallback for photos that cannot be uploaded.
    uploader : PhotoUploader
        Upload path shared with queue drains.
    geo_data : GeoDataService
        Source of the parcel set.
    cropping_year : int, optional
        Year captures are recorded under and parcels are fetched for.
    parcels : Sequence[Parcel]
        Last known parcel set, used until a refresh succeeds.
    connected : bool
        Initial connectivity state.
    proximity_radius_m : float
        Distance gate for adding a photo to an existing cluster.
    cluster_tolerance_deg : float
        Per-axis anchor tolerance used when clustering uploaded photos.
    """

    def __init__(
        self,
        queue: OfflineCaptureQueue,
        uploader: PhotoUploader,
        geo_data: GeoDataService,
        cropping_year: int | None = None,
        parcels: Sequence[Parcel] = (),
        connected: bool = False,
        proximity_radius_m: float = PROXIMITY_RADIUS_M,
        cluster_tolerance_deg: float = CLUSTER_TOLERANCE_DEG,
    ):
        self.queue = queue
        self.uploader = uploader
        self.geo_data = geo_data
        self.cropping_year = cropping_year
        self.connected = connected
        self.proximity_radius_m = proximity_radius_m
        self.cluster_tolerance_deg = cluster_tolerance_deg
        self.coordinator = SyncCoordinator(queue)
        self._index = SpatialIndex(parcels)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        records: RecordStore,
        objects: ObjectStore | None = None,
        sessions: SessionProvider | None = None,
        backup: BackupService | None = None,
        cropping_year: int | None = None,
    ) -> CaptureService:
        """
        Assemble a capture service from application settings.

        Parameters
        ----------
        settings : Settings
            Loaded configuration.
        records : RecordStore
            Store shared by the upload path and the geo data queries.
        objects : ObjectStore, optional
            Photo bucket; defaults to a local directory named after
            ``settings.photos_bucket`` under the data directory.
        sessions : SessionProvider, optional
            Identity source for uploads.
        backup : BackupService, optional
            Best-effort copy target.
        cropping_year : int, optional
            Year captures are recorded under.

        Returns
        -------
        CaptureService
            Service using the on-disk capture queue.
        """
        if objects is None:
            objects = LocalObjectStore(settings.data_dir / settings.photos_bucket)
        uploader = PhotoUploader(
            objects,
            records,
            LocalFileArea(),
            sessions=sessions,
            backup=backup,
            auth_timeout=settings.auth_timeout_s,
            backup_folders=settings.backup_folders,
        )
        geo_data = GeoDataService(
            records,
            fetch_timeout=settings.fetch_timeout_s,
            chunk_size=settings.parcel_chunk_size,
        )
        return cls(
            open_queue(settings),
            uploader,
            geo_data,
            cropping_year=cropping_year,
            proximity_radius_m=settings.proximity_radius_m,
            cluster_tolerance_deg=settings.cluster_tolerance_deg,
        )

    @property
    def parcel_count(self) -> int:
        return len(self._index)

    def set_parcels(self, parcels: Sequence[Parcel]) -> None:
        self._index = SpatialIndex(parcels)

    def find_parcel_name(self, latitude: float, longitude: float) -> str | None:
        return self._index.find_parcel_name(latitude, longitude)

    async def refresh_parcels(self) -> int:
        """
        Reload the parcel set for the current cropping year.

        A failed fetch keeps the last known set.

        Returns
        -------
        int
            Number of parcels in use after the refresh.
        """
        if self.cropping_year is None:
            logger.warning("No cropping year selected, keeping cached parcels")
            return self.parcel_count
        try:
            parcels = await self.geo_data.fetch_parcels(self.cropping_year)
        except Exception as e:
            logger.warning(f"Parcel refresh failed, keeping cached parcels: {e}")
            return self.parcel_count
        self.set_parcels(parcels)
        logger.info(f"Loaded {len(parcels)} parcels for {self.cropping_year}")
        return len(parcels)

    async def capture(
        self,
        image_path: str | Path,
        coordinate: Coordinate,
        session: SessionContext | None = None,
    ) -> CaptureOutcome:
        """
        Handle a shutter press.

        Parameters
        ----------
        image_path : str | Path
            Fresh image file from the camera.
        coordinate : Coordinate
            Location fix taken with the photo.
        session : SessionContext, optional
            Identity for the upload record.

        Returns
        -------
        CaptureOutcome
            Uploaded, or queued with the resulting queue length.

        Raises
        ------
        QueueError
            Raised when the fallback enqueue fails; the photo is still at
            ``image_path`` in that case.
        """
        image_path = Path(image_path)
        parcel_name = self.find_parcel_name(coordinate.latitude, coordinate.longitude)

        error = None
        if self.connected:
            try:
                url = await self.uploader.upload(
                    image_path,
                    coordinate,
                    parcel_name,
                    cropping_year=self.cropping_year,
                    session=session,
                )
            except Exception as e:
                logger.warning(f"Immediate upload failed, queueing photo: {e}")
                error = str(e)
            else:
                return CaptureOutcome(uploaded=True, parcel_name=parcel_name, url=url)

        queue_length = await self.queue.enqueue(image_path, coordinate)
        return CaptureOutcome(
            uploaded=False,
            parcel_name=parcel_name,
            queue_length=queue_length,
            error=error,
        )

    async def sync(self, session: SessionContext | None = None) -> DrainResult | None:
        """
        Drain the queue when connected.

        Parcels are refreshed first so every queued photo is resolved against
        the current boundaries.

        Returns
        -------
        DrainResult | None
            Drain counts, or ``None`` while offline.
        """
        if not self.connected:
            logger.debug("Offline, sync postponed")
            return None

        await self.refresh_parcels()

        async def upload(capture: Capture, parcel_name: str | None) -> str:
            return await self.uploader.upload(
                capture.image_path,
                capture.coordinate,
                parcel_name,
                cropping_year=self.cropping_year,
                session=session,
            )

        return await self.coordinator.drain(upload, self.find_parcel_name)

    async def load_clusters(self) -> list[PhotoCluster]:
        """Cluster every located photo for the map view."""
        photos = await self.geo_data.fetch_all_photo_locations()
        return cluster_photos(photos, tolerance=self.cluster_tolerance_deg)

    def can_add_to_cluster(self, cluster: PhotoCluster, coordinate: Coordinate) -> bool:
        """Check whether a new photo is close enough to extend a cluster."""
        return is_within(
            (coordinate.latitude, coordinate.longitude),
            (cluster.anchor_latitude, cluster.anchor_longitude),
            meters=self.proximity_radius_m,
        )
