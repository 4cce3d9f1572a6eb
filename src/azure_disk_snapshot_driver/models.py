from __future__ import annotations

from dataclasses import dataclass, field

DRIVER_NAME = "azure"
RESOURCE_GROUP_OPTION = "resourceGroupName"

STATUS_PENDING = ""
STATUS_IN_PROGRESS = "InProgress"
STATUS_SUCCESSFUL = "Successful"
STATUS_FAILED = "Failed"
TERMINAL_STATUSES = frozenset({STATUS_SUCCESSFUL, STATUS_FAILED})


@dataclass(frozen=True)
class Scope:
    subscription_id: str
    resource_group: str


@dataclass
class BackupVolumeInfo:
    persistent_volume_claim: str
    namespace: str
    driver_name: str
    volume: str = ""
    backup_id: str = ""
    options: dict[str, str] = field(default_factory=dict)
    status: str = STATUS_PENDING
    reason: str = ""


@dataclass
class RestoreVolumeInfo:
    persistent_volume_claim: str
    source_namespace: str
    source_volume: str
    restore_volume: str
    driver_name: str
    options: dict[str, str] = field(default_factory=dict)
    status: str = STATUS_PENDING
    reason: str = ""


@dataclass(frozen=True)
class BackupJob:
    name: str
    namespace: str
    uid: str
    volumes: list[BackupVolumeInfo] = field(default_factory=list)


@dataclass(frozen=True)
class RestoreJob:
    name: str
    namespace: str
    uid: str
    volumes: list[RestoreVolumeInfo] = field(default_factory=list)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def recorded_resource_group(options: dict[str, str] | None) -> str | None:
    if not options:
        return None
    value = options.get(RESOURCE_GROUP_OPTION, "").strip()
    return value or None
