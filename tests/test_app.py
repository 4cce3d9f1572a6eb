from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

from azure_disk_snapshot_driver.app import (
    _AUTH_MODE_IN_CLUSTER,
    _AUTH_MODE_PASTE_KUBECONFIG,
    _AUTH_MODE_USE_KUBECONFIG_PATH,
    _actionable_next_step,
    _auth_mode_guidance,
    _build_backup_rows,
    _build_claim_rows,
    _build_restore_rows,
    _build_workflow_rows,
    _count_failed,
    _default_auth_mode,
    _job_finished,
    _label_for_claim,
    _new_job_name,
    _restore_ready,
    _validate_connection_inputs,
)
from azure_disk_snapshot_driver.models import BackupVolumeInfo, RestoreVolumeInfo


def _pvc(*, name: str = "db-data", volume_name: str | None = "pv-db-data", deleting: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(
            namespace="apps",
            name=name,
            deletion_timestamp=datetime(2026, 2, 23, tzinfo=UTC) if deleting else None,
        ),
        spec=SimpleNamespace(volume_name=volume_name, storage_class_name=None),
    )


def _backup_info(*, status: str = "", reason: str = "") -> BackupVolumeInfo:
    return BackupVolumeInfo(
        persistent_volume_claim="db-data",
        namespace="apps",
        driver_name="azure",
        volume="pv-db-data",
        backup_id="stork-snapshot-1",
        options={"resourceGroupName": "rg-A"},
        status=status,
        reason=reason,
    )


def _restore_info(*, status: str = "", reason: str = "") -> RestoreVolumeInfo:
    return RestoreVolumeInfo(
        persistent_volume_claim="db-data",
        source_namespace="apps",
        source_volume="pv-db-data",
        restore_volume="pvc-1",
        driver_name="azure",
        status=status,
        reason=reason,
    )


def _valid_kubeconfig_content() -> str:
    return """
apiVersion: v1
clusters:
  - name: dev
    cluster:
      server: https://example.invalid
contexts:
  - name: dev
    context:
      cluster: dev
      user: dev
users:
  - name: dev
    user:
      token: abc
current-context: dev
"""


def test_build_claim_rows_with_missing_optional_fields_returns_defaults() -> None:
    rows = _build_claim_rows([_pvc(volume_name=None, deleting=True)], owned={})

    assert rows == [
        {
            "namespace": "apps",
            "pvc": "db-data",
            "storage_class": "unknown",
            "bound_pv": "unbound",
            "deleting": "yes",
            "azure_disk": "no",
        }
    ]


def test_build_claim_rows_marks_owned_claims() -> None:
    rows = _build_claim_rows([_pvc()], owned={"apps/db-data": True})

    assert rows[0]["azure_disk"] == "yes"


def test_label_for_claim_includes_bound_volume() -> None:
    assert _label_for_claim(_pvc()) == "apps/db-data | pv=pv-db-data"
    assert _label_for_claim(_pvc(volume_name=None)) == "apps/db-data | pv=unbound"


def test_build_backup_rows_with_failed_snapshot_includes_actionable_next_step() -> None:
    rows = _build_backup_rows([_backup_info(status="Failed", reason="Backup failed for volume: Failed")])

    assert rows[0]["status"] == "Failed"
    assert rows[0]["resource_group"] == "rg-A"
    assert "Next step: Inspect the snapshot" in rows[0]["actionable_message"]


def test_build_backup_rows_with_unpolled_record_shows_pending() -> None:
    rows = _build_backup_rows([_backup_info()])

    assert rows[0]["status"] == "Pending"
    assert rows[0]["actionable_message"] == "Not polled yet. Refresh status to query Azure."


def test_build_restore_rows_with_in_progress_disk_suggests_polling() -> None:
    rows = _build_restore_rows([_restore_info(status="InProgress", reason="Volume restore in progress: Creating")])

    assert rows[0]["restore_volume"] == "pvc-1"
    assert "Poll again later" in rows[0]["actionable_message"]


def test_actionable_next_step_with_success_needs_no_action() -> None:
    assert _actionable_next_step("Successful", "Backup successful for volume") == "No follow-up action required."


def test_actionable_next_step_with_unknown_reason_points_at_logs() -> None:
    assert "Review the driver logs" in _actionable_next_step("Failed", "something odd")


def test_job_finished_requires_every_volume_terminal() -> None:
    assert _job_finished([]) is False
    assert _job_finished([_backup_info(status="Successful"), _backup_info(status="InProgress")]) is False
    assert _job_finished([_backup_info(status="Successful"), _backup_info(status="Failed")]) is True


def test_count_failed_counts_failed_volumes() -> None:
    assert _count_failed([_restore_info(status="Failed"), _restore_info(status="Successful")]) == 1


def test_restore_ready_with_failed_snapshot_returns_false() -> None:
    assert _restore_ready([_backup_info(status="Successful"), _backup_info(status="Failed")]) is False
    assert _restore_ready([_backup_info(status="Successful"), _backup_info(status="InProgress")]) is False
    assert _restore_ready([_backup_info(status="Successful"), _backup_info(status="Successful")]) is True


def test_new_job_name_uses_prefix_and_timestamp() -> None:
    name = _new_job_name("backup")

    assert name.startswith("backup-")
    assert len(name) == len("backup-") + 14


def test_build_workflow_rows_with_finished_backup_marks_restore_ready() -> None:
    rows = _build_workflow_rows(
        connected=True,
        discovered_count=2,
        backup_finished=True,
        backup_started=True,
        restore_started=False,
    )

    assert [row["state"] for row in rows] == ["Done", "Done", "Done", "Done", "Ready"]


def test_build_workflow_rows_before_connection_blocks_later_steps() -> None:
    rows = _build_workflow_rows(
        connected=False,
        discovered_count=0,
        backup_finished=False,
        backup_started=False,
        restore_started=False,
    )

    assert [row["state"] for row in rows] == ["Ready", "Waiting", "Waiting", "Waiting", "Waiting"]


def test_validate_connection_inputs_with_pasted_mode_and_missing_content_returns_error() -> None:
    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_PASTE_KUBECONFIG,
        kubeconfig_path_input="",
        kubeconfig_text_input="",
    )

    assert error == "Paste kubeconfig content before connecting."


def test_validate_connection_inputs_with_existing_kubeconfig_path_returns_none(tmp_path: Path) -> None:
    kubeconfig_path = tmp_path / "config"
    kubeconfig_path.write_text(_valid_kubeconfig_content())

    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_USE_KUBECONFIG_PATH,
        kubeconfig_path_input=str(kubeconfig_path),
        kubeconfig_text_input="",
    )

    assert error is None


def test_validate_connection_inputs_with_kubeconfig_path_directory_returns_error(tmp_path: Path) -> None:
    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_USE_KUBECONFIG_PATH,
        kubeconfig_path_input=str(tmp_path),
        kubeconfig_text_input="",
    )

    assert error == f"Kubeconfig path must point to a file: {tmp_path}"


def test_validate_connection_inputs_with_pasted_invalid_yaml_returns_error() -> None:
    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_PASTE_KUBECONFIG,
        kubeconfig_path_input="",
        kubeconfig_text_input="apiVersion: v1\nclusters: [",
    )

    assert error == "Pasted kubeconfig must be valid YAML: ParserError."


def test_validate_connection_inputs_with_pasted_missing_contexts_returns_error() -> None:
    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_PASTE_KUBECONFIG,
        kubeconfig_path_input="",
        kubeconfig_text_input="""
apiVersion: v1
clusters: []
users: []
""",
    )

    assert error == "Pasted kubeconfig is missing required field(s): contexts."


def test_validate_connection_inputs_with_incluster_mode_without_pod_environment_returns_error(monkeypatch) -> None:
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    monkeypatch.setattr("azure_disk_snapshot_driver.app.Path.exists", lambda self: False)

    error = _validate_connection_inputs(
        auth_mode=_AUTH_MODE_IN_CLUSTER,
        kubeconfig_path_input="",
        kubeconfig_text_input="",
    )

    assert "In-cluster service account mode requires Kubernetes pod environment variables" in str(error)


def test_auth_mode_guidance_for_incluster_mentions_serviceaccount_flow() -> None:
    guidance = _auth_mode_guidance(_AUTH_MODE_IN_CLUSTER)

    assert "ServiceAccount" in guidance
    assert "workload identity" in guidance


def test_auth_mode_guidance_for_paste_mentions_troubleshooting_use_only() -> None:
    assert "short-lived troubleshooting" in _auth_mode_guidance(_AUTH_MODE_PASTE_KUBECONFIG)


def test_default_auth_mode_prefers_env_override_then_incluster_detection(monkeypatch) -> None:
    monkeypatch.delenv("AZDSD_DEFAULT_AUTH_MODE", raising=False)
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    monkeypatch.setattr("azure_disk_snapshot_driver.app.Path.exists", lambda self: False)
    assert _default_auth_mode() == _AUTH_MODE_USE_KUBECONFIG_PATH

    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
    monkeypatch.setattr("azure_disk_snapshot_driver.app.Path.exists", lambda self: True)
    assert _default_auth_mode() == _AUTH_MODE_IN_CLUSTER

    monkeypatch.setenv("AZDSD_DEFAULT_AUTH_MODE", "paste")
    assert _default_auth_mode() == _AUTH_MODE_PASTE_KUBECONFIG
