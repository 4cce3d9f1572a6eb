from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import CreationData, Disk, DiskCreateOption, Snapshot

from .errors import RemoteResourceNotFoundError, RemoteServiceError
from .models import Scope

DEFAULT_REMOTE_TIMEOUT_SECONDS = 60
T = TypeVar("T")

logger = logging.getLogger(__name__)


class DiskService:
    """Managed disk and snapshot operations bound to one subscription.

    Calls default to the resource group of ``scope``; every method accepts an
    explicit ``resource_group`` for records created under a different scope.
    Create and delete calls only send the initial request; progress is read
    back through ``get_disk`` and ``get_snapshot``.
    """

    def __init__(
        self,
        *,
        compute_client: ComputeManagementClient,
        scope: Scope,
        timeout_seconds: int = DEFAULT_REMOTE_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.compute_client = compute_client
        self.scope = scope
        self.timeout_seconds = timeout_seconds

    @classmethod
    def for_scope(
        cls,
        scope: Scope,
        credential: TokenCredential,
        *,
        timeout_seconds: int = DEFAULT_REMOTE_TIMEOUT_SECONDS,
    ) -> DiskService:
        return cls(
            compute_client=ComputeManagementClient(credential, scope.subscription_id),
            scope=scope,
            timeout_seconds=timeout_seconds,
        )

    def get_disk(self, name: str, *, resource_group: str | None = None) -> Disk:
        group = resource_group or self.scope.resource_group
        return self._call(
            operation=f"get disk '{group}/{name}'",
            func=lambda: self.compute_client.disks.get(group, name, timeout=self.timeout_seconds),
        )

    def create_disk_from_snapshot(
        self,
        name: str,
        *,
        snapshot: Snapshot,
        tags: dict[str, str],
        resource_group: str | None = None,
    ) -> None:
        group = resource_group or self.scope.resource_group
        disk = Disk(
            location=snapshot.location,
            creation_data=CreationData(create_option=DiskCreateOption.COPY, source_resource_id=snapshot.id),
            tags=tags,
        )
        self._call(
            operation=f"create disk '{group}/{name}'",
            func=lambda: self.compute_client.disks.begin_create_or_update(
                group, name, disk, timeout=self.timeout_seconds, polling=False
            ),
        )
        logger.info("Started creation of disk %s/%s from snapshot %s", group, name, snapshot.name)

    def get_snapshot(self, name: str, *, resource_group: str | None = None) -> Snapshot:
        group = resource_group or self.scope.resource_group
        return self._call(
            operation=f"get snapshot '{group}/{name}'",
            func=lambda: self.compute_client.snapshots.get(group, name, timeout=self.timeout_seconds),
        )

    def create_snapshot_from_disk(
        self,
        name: str,
        *,
        disk: Disk,
        tags: dict[str, str],
        resource_group: str | None = None,
    ) -> None:
        group = resource_group or self.scope.resource_group
        snapshot = Snapshot(
            location=disk.location,
            creation_data=CreationData(create_option=DiskCreateOption.COPY, source_resource_id=disk.id),
            tags=tags,
        )
        self._call(
            operation=f"create snapshot '{group}/{name}'",
            func=lambda: self.compute_client.snapshots.begin_create_or_update(
                group, name, snapshot, timeout=self.timeout_seconds, polling=False
            ),
        )
        logger.info("Started snapshot %s/%s of disk %s", group, name, disk.name)

    def delete_snapshot(self, name: str, *, resource_group: str | None = None) -> None:
        group = resource_group or self.scope.resource_group
        self._call(
            operation=f"delete snapshot '{group}/{name}'",
            func=lambda: self.compute_client.snapshots.begin_delete(
                group, name, timeout=self.timeout_seconds, polling=False
            ),
        )
        logger.info("Started deletion of snapshot %s/%s", group, name)

    def _call(self, *, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except ResourceNotFoundError as error:
            raise RemoteResourceNotFoundError(_format_remote_error(operation=operation, error=error)) from error
        except HttpResponseError as error:
            if error.status_code == 404:
                raise RemoteResourceNotFoundError(_format_remote_error(operation=operation, error=error)) from error
            raise RemoteServiceError(
                _format_remote_error(operation=operation, error=error),
                status_code=error.status_code,
            ) from error
        except AzureError as error:
            raise RemoteServiceError(_format_remote_error(operation=operation, error=error)) from error


def _format_remote_error(*, operation: str, error: Any) -> str:
    status = getattr(error, "status_code", None)
    status_text = status if status is not None else "unknown"
    reason = str(getattr(error, "message", "") or error).strip() or error.__class__.__name__
    return f"Azure request failed while trying to {operation}: status {status_text} ({reason})"
