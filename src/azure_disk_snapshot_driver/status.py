from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .models import (
    DRIVER_NAME,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_SUCCESSFUL,
    BackupVolumeInfo,
    RestoreVolumeInfo,
    is_terminal,
    recorded_resource_group,
)
from .remote import DiskService

PROVISIONING_FAILED = "Failed"
PROVISIONING_SUCCEEDED = "Succeeded"
RecordT = TypeVar("RecordT", BackupVolumeInfo, RestoreVolumeInfo)

logger = logging.getLogger(__name__)


def translate_provisioning_state(state: str | None, *, kind: str) -> tuple[str, str]:
    """Map an Azure provisioning state to a lifecycle status and reason.

    ``kind`` is ``"backup"`` or ``"restore"`` and only shapes the reason text.
    """
    if state == PROVISIONING_FAILED:
        return STATUS_FAILED, f"{kind.capitalize()} failed for volume: {state}"
    if state == PROVISIONING_SUCCEEDED:
        return STATUS_SUCCESSFUL, f"{kind.capitalize()} successful for volume"
    return STATUS_IN_PROGRESS, f"Volume {kind} in progress: {state or 'Unknown'}"


def poll_backup(records: list[BackupVolumeInfo], *, disk_service: DiskService) -> list[BackupVolumeInfo]:
    return _poll(
        records,
        kind="backup",
        disk_service=disk_service,
        identifier=lambda record: record.backup_id,
        fetch_state=lambda name, group: disk_service.get_snapshot(name, resource_group=group).provisioning_state,
    )


def poll_restore(records: list[RestoreVolumeInfo], *, disk_service: DiskService) -> list[RestoreVolumeInfo]:
    return _poll(
        records,
        kind="restore",
        disk_service=disk_service,
        identifier=lambda record: record.restore_volume,
        fetch_state=lambda name, group: disk_service.get_disk(name, resource_group=group).provisioning_state,
    )


def _poll(
    records: list[RecordT],
    *,
    kind: str,
    disk_service: DiskService,
    identifier: Callable[[RecordT], str],
    fetch_state: Callable[[str, str], str | None],
) -> list[RecordT]:
    for record in records:
        if record.driver_name != DRIVER_NAME or is_terminal(record.status):
            continue
        resource_group = recorded_resource_group(record.options)
        if resource_group is None:
            resource_group = disk_service.scope.resource_group
            logger.warning(
                "Missing resource group in %s record %s, will use current resource group %s",
                kind,
                identifier(record),
                resource_group,
            )
        state = fetch_state(identifier(record), resource_group)
        record.status, record.reason = translate_provisioning_state(state, kind=kind)
    return records
