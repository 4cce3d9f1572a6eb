from __future__ import annotations

import logging
from typing import Any
import uuid

from .errors import RemoteServiceError, SnapshotCleanupError, VolumeLookupError
from .k8s import VolumeDirectory
from .models import (
    DRIVER_NAME,
    RESOURCE_GROUP_OPTION,
    BackupJob,
    BackupVolumeInfo,
    recorded_resource_group,
)
from .remote import DiskService

SNAPSHOT_NAME_PREFIX = "stork-snapshot-"
CREATED_BY_TAG = "created-by"
CREATED_BY_VALUE = "stork"
BACKUP_UID_TAG = "backup-uid"
SOURCE_PVC_NAME_TAG = "source-pvc-name"
SOURCE_PVC_NAMESPACE_TAG = "source-pvc-namespace"

logger = logging.getLogger(__name__)


class SnapshotOrchestrator:
    def __init__(self, *, directory: VolumeDirectory, disk_service: DiskService) -> None:
        self.directory = directory
        self.disk_service = disk_service

    def start_backup(self, job: BackupJob, claims: list[Any]) -> list[BackupVolumeInfo]:
        """Start one snapshot per claim and return the backup records.

        Claims being deleted are skipped. The first failure aborts the call;
        snapshots already started are left for the caller's retry or cleanup.
        """
        volume_infos: list[BackupVolumeInfo] = []
        for claim in claims:
            namespace = claim.metadata.namespace or ""
            claim_name = claim.metadata.name or ""
            if claim.metadata.deletion_timestamp is not None:
                logger.warning("Backup %s/%s: ignoring PVC %s which is being deleted", job.namespace, job.name, claim_name)
                continue

            volume_info = self._backup_claim(job=job, claim=claim, namespace=namespace, claim_name=claim_name)
            volume_infos.append(volume_info)
        return volume_infos

    def _backup_claim(self, *, job: BackupJob, claim: Any, namespace: str, claim_name: str) -> BackupVolumeInfo:
        volume_name = self.directory.get_volume_name_for_claim(claim)
        volume = self.directory.get_persistent_volume(volume_name)
        disk_name = _azure_disk_name(volume)
        disk = self.disk_service.get_disk(disk_name)

        snapshot_name = generate_snapshot_name()
        try:
            self.disk_service.create_snapshot_from_disk(
                snapshot_name,
                disk=disk,
                tags={
                    CREATED_BY_TAG: CREATED_BY_VALUE,
                    BACKUP_UID_TAG: job.uid,
                    SOURCE_PVC_NAME_TAG: claim_name,
                    SOURCE_PVC_NAMESPACE_TAG: namespace,
                },
            )
        except RemoteServiceError as error:
            raise RemoteServiceError(
                f"Error triggering backup for volume {disk_name} (PVC: {claim_name}, Namespace: {namespace}): {error}",
                status_code=error.status_code,
            ) from error

        return BackupVolumeInfo(
            persistent_volume_claim=claim_name,
            namespace=namespace,
            driver_name=DRIVER_NAME,
            volume=volume_name,
            backup_id=snapshot_name,
            options={RESOURCE_GROUP_OPTION: self.disk_service.scope.resource_group},
        )


class CleanupManager:
    def __init__(self, *, disk_service: DiskService) -> None:
        self.disk_service = disk_service

    def delete_backup(self, job: BackupJob) -> None:
        """Delete every snapshot of the job owned by this driver.

        Missing snapshots count as deleted. Other failures do not stop the
        loop; they are raised together once every record has been visited.
        """
        failures: list[tuple[str, RemoteServiceError]] = []
        for volume_info in job.volumes:
            if volume_info.driver_name != DRIVER_NAME or not volume_info.backup_id:
                continue
            resource_group = recorded_resource_group(volume_info.options)
            if resource_group is None:
                resource_group = self.disk_service.scope.resource_group
                logger.warning(
                    "Missing resource group in snapshot %s, will use current resource group %s",
                    volume_info.backup_id,
                    resource_group,
                )
            try:
                self.disk_service.delete_snapshot(volume_info.backup_id, resource_group=resource_group)
            except RemoteServiceError as error:
                if error.is_not_found:
                    logger.info("Snapshot %s already deleted", volume_info.backup_id)
                    continue
                logger.error("Failed to delete snapshot %s: %s", volume_info.backup_id, error)
                failures.append((volume_info.backup_id, error))

        if failures:
            raise SnapshotCleanupError(failures)

    def cancel_backup(self, job: BackupJob) -> None:
        self.delete_backup(job)


def generate_snapshot_name() -> str:
    return f"{SNAPSHOT_NAME_PREFIX}{uuid.uuid4()}"


def _azure_disk_name(volume: Any) -> str:
    azure_disk = volume.spec.azure_disk if volume.spec else None
    if azure_disk is None or not azure_disk.disk_name:
        raise VolumeLookupError(f"PV '{volume.metadata.name}' does not reference an Azure disk")
    return azure_disk.disk_name
