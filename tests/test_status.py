from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from azure_disk_snapshot_driver.errors import RemoteServiceError
from azure_disk_snapshot_driver.models import (
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_SUCCESSFUL,
    BackupVolumeInfo,
    RestoreVolumeInfo,
    Scope,
)
from azure_disk_snapshot_driver.status import poll_backup, poll_restore, translate_provisioning_state


def _disk_service() -> Mock:
    service = Mock()
    service.scope = Scope(subscription_id="sub-1", resource_group="rg-A")
    return service


def _backup_info(**overrides) -> BackupVolumeInfo:
    values = {
        "persistent_volume_claim": "db-data",
        "namespace": "apps",
        "driver_name": "azure",
        "volume": "pv-db-data",
        "backup_id": "stork-snapshot-1",
        "options": {"resourceGroupName": "rg-B"},
    }
    values.update(overrides)
    return BackupVolumeInfo(**values)


def _restore_info(**overrides) -> RestoreVolumeInfo:
    values = {
        "persistent_volume_claim": "db-data",
        "source_namespace": "apps",
        "source_volume": "pv-db-data",
        "restore_volume": "pvc-1",
        "driver_name": "azure",
        "options": {"resourceGroupName": "rg-A"},
    }
    values.update(overrides)
    return RestoreVolumeInfo(**values)


@pytest.mark.parametrize(
    "state, expected_status, reason_fragment",
    [
        ("Failed", STATUS_FAILED, "Backup failed for volume: Failed"),
        ("Succeeded", STATUS_SUCCESSFUL, "Backup successful for volume"),
        ("Creating", STATUS_IN_PROGRESS, "Volume backup in progress: Creating"),
        (None, STATUS_IN_PROGRESS, "in progress: Unknown"),
    ],
)
def test_translate_provisioning_state_maps_azure_states(
    state: str | None,
    expected_status: str,
    reason_fragment: str,
) -> None:
    status, reason = translate_provisioning_state(state, kind="backup")

    assert status == expected_status
    assert reason_fragment in reason


def test_poll_backup_with_recorded_resource_group_reads_snapshot_from_that_group() -> None:
    service = _disk_service()
    service.get_snapshot.return_value = SimpleNamespace(provisioning_state="Succeeded")
    record = _backup_info()

    updated = poll_backup([record], disk_service=service)

    service.get_snapshot.assert_called_once_with("stork-snapshot-1", resource_group="rg-B")
    assert updated == [record]
    assert record.status == STATUS_SUCCESSFUL


def test_poll_backup_without_recorded_resource_group_falls_back_to_scope(caplog: pytest.LogCaptureFixture) -> None:
    service = _disk_service()
    service.get_snapshot.return_value = SimpleNamespace(provisioning_state="Creating")
    record = _backup_info(options={})

    poll_backup([record], disk_service=service)

    service.get_snapshot.assert_called_once_with("stork-snapshot-1", resource_group="rg-A")
    assert record.status == STATUS_IN_PROGRESS
    assert "Missing resource group" in caplog.text


def test_poll_backup_with_foreign_driver_record_passes_it_through_unchanged() -> None:
    service = _disk_service()
    foreign = _backup_info(driver_name="pxd", status="", reason="")

    updated = poll_backup([foreign], disk_service=service)

    assert updated == [foreign]
    assert foreign.status == ""
    service.get_snapshot.assert_not_called()


def test_poll_backup_with_terminal_record_never_regresses_to_in_progress() -> None:
    service = _disk_service()
    service.get_snapshot.return_value = SimpleNamespace(provisioning_state="Updating")
    record = _backup_info(status=STATUS_SUCCESSFUL, reason="Backup successful for volume")

    poll_backup([record], disk_service=service)
    poll_backup([record], disk_service=service)

    assert record.status == STATUS_SUCCESSFUL
    service.get_snapshot.assert_not_called()


def test_poll_backup_with_failed_snapshot_keeps_failed_across_polls() -> None:
    service = _disk_service()
    service.get_snapshot.return_value = SimpleNamespace(provisioning_state="Failed")
    record = _backup_info()

    poll_backup([record], disk_service=service)
    poll_backup([record], disk_service=service)

    assert record.status == STATUS_FAILED
    assert record.reason == "Backup failed for volume: Failed"
    assert service.get_snapshot.call_count == 1


def test_poll_backup_with_remote_error_propagates() -> None:
    service = _disk_service()
    service.get_snapshot.side_effect = RemoteServiceError("throttled", status_code=429)

    with pytest.raises(RemoteServiceError, match="throttled"):
        poll_backup([_backup_info()], disk_service=service)


def test_poll_restore_reads_disk_state_and_preserves_order() -> None:
    service = _disk_service()
    states = {"pvc-1": "Succeeded", "pvc-2": "Failed"}
    service.get_disk.side_effect = lambda name, resource_group: SimpleNamespace(provisioning_state=states[name])
    first = _restore_info(restore_volume="pvc-1")
    second = _restore_info(restore_volume="pvc-2")

    updated = poll_restore([first, second], disk_service=service)

    assert [record.restore_volume for record in updated] == ["pvc-1", "pvc-2"]
    assert first.status == STATUS_SUCCESSFUL
    assert first.reason == "Restore successful for volume"
    assert second.status == STATUS_FAILED
    assert second.reason == "Restore failed for volume: Failed"
