from __future__ import annotations

import logging
from typing import Any
import uuid

from .backup import CREATED_BY_TAG, CREATED_BY_VALUE, SOURCE_PVC_NAME_TAG, SOURCE_PVC_NAMESPACE_TAG
from .errors import RemoteResourceNotFoundError, RemoteServiceError, VolumeLookupError
from .models import (
    DRIVER_NAME,
    RESOURCE_GROUP_OPTION,
    BackupVolumeInfo,
    RestoreJob,
    RestoreVolumeInfo,
    recorded_resource_group,
)
from .remote import DiskService

PV_NAME_PREFIX = "pvc-"
RESTORE_UID_TAG = "restore-uid"
MAX_NAME_ATTEMPTS = 5

logger = logging.getLogger(__name__)


class RestoreOrchestrator:
    def __init__(self, *, disk_service: DiskService) -> None:
        self.disk_service = disk_service

    def start_restore(self, job: RestoreJob, backup_volumes: list[BackupVolumeInfo]) -> list[RestoreVolumeInfo]:
        volume_infos: list[RestoreVolumeInfo] = []
        target_group = self.disk_service.scope.resource_group
        for backup_volume in backup_volumes:
            if backup_volume.driver_name != DRIVER_NAME:
                continue

            source_group = recorded_resource_group(backup_volume.options)
            if source_group is None:
                source_group = target_group
                logger.warning(
                    "Missing resource group in snapshot %s, will use current resource group %s",
                    backup_volume.backup_id,
                    source_group,
                )

            snapshot = self.disk_service.get_snapshot(backup_volume.backup_id, resource_group=source_group)
            restore_name = self._fresh_volume_name(target_group)
            try:
                self.disk_service.create_disk_from_snapshot(
                    restore_name,
                    snapshot=snapshot,
                    tags={
                        CREATED_BY_TAG: CREATED_BY_VALUE,
                        RESTORE_UID_TAG: job.uid,
                        SOURCE_PVC_NAME_TAG: backup_volume.persistent_volume_claim,
                        SOURCE_PVC_NAMESPACE_TAG: backup_volume.namespace,
                    },
                    resource_group=target_group,
                )
            except RemoteServiceError as error:
                raise RemoteServiceError(
                    f"Error triggering restore for volume {backup_volume.volume}: {error}",
                    status_code=error.status_code,
                ) from error

            volume_infos.append(
                RestoreVolumeInfo(
                    persistent_volume_claim=backup_volume.persistent_volume_claim,
                    source_namespace=backup_volume.namespace,
                    source_volume=backup_volume.volume,
                    restore_volume=restore_name,
                    driver_name=DRIVER_NAME,
                    options={RESOURCE_GROUP_OPTION: target_group},
                )
            )
        return volume_infos

    def cancel_restore(self, job: RestoreJob) -> None:
        # Disks already being created are kept; the host deletes the restored volumes.
        logger.info("Cancel requested for restore %s/%s, nothing to do for azure disks", job.namespace, job.name)

    def _fresh_volume_name(self, resource_group: str) -> str:
        for _ in range(MAX_NAME_ATTEMPTS):
            candidate = generate_volume_name()
            try:
                self.disk_service.get_disk(candidate, resource_group=resource_group)
            except RemoteResourceNotFoundError:
                return candidate
            logger.warning("Generated restore volume name %s already exists, retrying", candidate)
        raise RemoteServiceError(f"Unable to generate an unused restore volume name in {resource_group}")


def adopt_migrated_volume(volume: Any, *, disk_service: DiskService) -> Any:
    """Point a migrated volume at the disk named after the volume itself."""
    new_name = volume.metadata.name
    if volume.spec.csi is not None:
        volume.spec.csi.volume_handle = new_name
        return volume

    if volume.spec.azure_disk is None:
        raise VolumeLookupError(f"PV '{new_name}' has neither a CSI nor an Azure disk reference")

    volume.spec.azure_disk.disk_name = new_name
    disk = disk_service.get_disk(new_name)
    volume.spec.azure_disk.disk_uri = disk.id
    return volume


def generate_volume_name() -> str:
    return f"{PV_NAME_PREFIX}{uuid.uuid4()}"
