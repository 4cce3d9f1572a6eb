from __future__ import annotations

import logging
from typing import Any

import httpx
from azure.core.credentials import TokenCredential

from .backup import CleanupManager, SnapshotOrchestrator
from .config import DriverConfig, validate_config
from .errors import ConfigurationError, DriverRegistrationError
from .identity import build_credential, resolve_scope
from .k8s import VolumeDirectory
from .models import DRIVER_NAME, BackupJob, BackupVolumeInfo, RestoreJob, RestoreVolumeInfo, Scope
from .ownership import OwnershipClassifier
from .remote import DiskService
from .restore import RestoreOrchestrator, adopt_migrated_volume
from .status import poll_backup, poll_restore
from .unsupported import UnsupportedCapabilities

logger = logging.getLogger(__name__)


class AzureDiskDriver(UnsupportedCapabilities):
    """Snapshot and restore of Azure managed disks backing cluster volumes."""

    name = DRIVER_NAME

    def __init__(self, *, directory: VolumeDirectory, disk_service: DiskService) -> None:
        self.directory = directory
        self.disk_service = disk_service
        self.ownership = OwnershipClassifier(directory=directory)
        self.snapshots = SnapshotOrchestrator(directory=directory, disk_service=disk_service)
        self.restores = RestoreOrchestrator(disk_service=disk_service)
        self.cleanup = CleanupManager(disk_service=disk_service)

    @property
    def scope(self) -> Scope:
        return self.disk_service.scope

    def __str__(self) -> str:
        return self.name

    def stop(self) -> None:
        return None

    def owns_claim(self, claim: Any) -> bool:
        return self.ownership.owns_claim(claim)

    def owns_volume(self, volume: Any) -> bool:
        return self.ownership.owns_volume(volume)

    def start_backup(self, job: BackupJob, claims: list[Any]) -> list[BackupVolumeInfo]:
        return self.snapshots.start_backup(job, claims)

    def get_backup_status(self, job: BackupJob) -> list[BackupVolumeInfo]:
        return poll_backup(job.volumes, disk_service=self.disk_service)

    def cancel_backup(self, job: BackupJob) -> None:
        self.cleanup.cancel_backup(job)

    def delete_backup(self, job: BackupJob) -> None:
        self.cleanup.delete_backup(job)

    def start_restore(self, job: RestoreJob, backup_volumes: list[BackupVolumeInfo]) -> list[RestoreVolumeInfo]:
        return self.restores.start_restore(job, backup_volumes)

    def get_restore_status(self, job: RestoreJob) -> list[RestoreVolumeInfo]:
        return poll_restore(job.volumes, disk_service=self.disk_service)

    def cancel_restore(self, job: RestoreJob) -> None:
        self.restores.cancel_restore(job)

    def adopt_migrated_volume(self, volume: Any) -> Any:
        return adopt_migrated_volume(volume, disk_service=self.disk_service)

    update_migrated_persistent_volume_spec = adopt_migrated_volume


def initialize_driver(
    config: DriverConfig,
    *,
    directory: VolumeDirectory,
    http_client: httpx.Client | None = None,
    credential: TokenCredential | None = None,
) -> AzureDiskDriver:
    validate_config(config)
    scope = resolve_scope(config, http_client=http_client)
    disk_service = DiskService.for_scope(
        scope,
        credential or build_credential(),
        timeout_seconds=config.remote_timeout_seconds,
    )
    return AzureDiskDriver(directory=directory, disk_service=disk_service)


class DriverRegistry:
    def __init__(self) -> None:
        self._drivers: dict[str, AzureDiskDriver] = {}

    def register(self, name: str, driver: AzureDiskDriver) -> None:
        if name in self._drivers:
            raise DriverRegistrationError(f"volume driver '{name}' is already registered")
        self._drivers[name] = driver

    def get(self, name: str) -> AzureDiskDriver | None:
        return self._drivers.get(name)

    def names(self) -> list[str]:
        return sorted(self._drivers)


def register_driver(
    registry: DriverRegistry,
    config: DriverConfig,
    *,
    directory: VolumeDirectory,
    http_client: httpx.Client | None = None,
    credential: TokenCredential | None = None,
) -> AzureDiskDriver | None:
    """Initialize the driver and register it, or return None when Azure is unavailable."""
    try:
        driver = initialize_driver(config, directory=directory, http_client=http_client, credential=credential)
    except (ConfigurationError, ValueError) as error:
        logger.debug("Error initializing azure driver: %s", error)
        return None
    registry.register(DRIVER_NAME, driver)
    return driver
