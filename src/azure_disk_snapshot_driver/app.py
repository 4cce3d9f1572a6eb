from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any
import os
import uuid

import streamlit as st
import yaml

from azure_disk_snapshot_driver.config import DriverConfig
from azure_disk_snapshot_driver.driver import AzureDiskDriver, initialize_driver
from azure_disk_snapshot_driver.errors import DriverError
from azure_disk_snapshot_driver.k8s import (
    VolumeDirectory,
    load_kubernetes_clients,
    persist_kubeconfig_content,
)
from azure_disk_snapshot_driver.models import (
    RESOURCE_GROUP_OPTION,
    STATUS_FAILED,
    STATUS_SUCCESSFUL,
    BackupJob,
    BackupVolumeInfo,
    RestoreJob,
    RestoreVolumeInfo,
    is_terminal,
)

_AUTH_MODE_USE_KUBECONFIG_PATH = "Use kubeconfig path"
_AUTH_MODE_PASTE_KUBECONFIG = "Paste kubeconfig"
_AUTH_MODE_IN_CLUSTER = "In-cluster service account"

_WORKFLOW_STATE_LABELS = {
    "done": "Done",
    "active": "Ready",
    "blocked": "Waiting",
}

_REASON_HINTS: tuple[tuple[str, str], ...] = (
    (
        "Backup failed for volume",
        "Inspect the snapshot in the Azure portal activity log; delete the backup and retry.",
    ),
    (
        "Restore failed for volume",
        "Inspect the disk in the Azure portal activity log and confirm the snapshot still exists.",
    ),
    (
        "in progress",
        "Azure is still provisioning. Poll again later.",
    ),
)


def _initialize_state() -> None:
    defaults = {
        "connected": False,
        "connection": {},
        "driver": None,
        "claims": [],
        "owned_claims": {},
        "backup_job": None,
        "restore_job": None,
        "selected_claim_labels": [],
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def _label_for_claim(claim: Any) -> str:
    bound = claim.spec.volume_name if claim.spec and claim.spec.volume_name else "unbound"
    return f"{claim.metadata.namespace}/{claim.metadata.name} | pv={bound}"


def _build_claim_rows(claims: list[Any], owned: dict[str, bool]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for claim in claims:
        key = f"{claim.metadata.namespace}/{claim.metadata.name}"
        rows.append(
            {
                "namespace": claim.metadata.namespace or "",
                "pvc": claim.metadata.name or "",
                "storage_class": (claim.spec.storage_class_name if claim.spec else None) or "unknown",
                "bound_pv": (claim.spec.volume_name if claim.spec else None) or "unbound",
                "deleting": "yes" if claim.metadata.deletion_timestamp is not None else "no",
                "azure_disk": "yes" if owned.get(key) else "no",
            }
        )
    return rows


def _actionable_next_step(status: str, reason: str) -> str:
    if status == STATUS_SUCCESSFUL:
        return "No follow-up action required."
    normalized = reason.strip()
    if not normalized:
        return "Not polled yet. Refresh status to query Azure."

    for marker, hint in _REASON_HINTS:
        if marker in normalized:
            return f"{normalized} | Next step: {hint}"
    return f"{normalized} | Next step: Review the driver logs for more detail."


def _build_backup_rows(volumes: list[BackupVolumeInfo]) -> list[dict[str, str]]:
    return [
        {
            "namespace": volume.namespace,
            "pvc": volume.persistent_volume_claim,
            "volume": volume.volume,
            "snapshot": volume.backup_id,
            "resource_group": volume.options.get(RESOURCE_GROUP_OPTION, ""),
            "status": volume.status or "Pending",
            "actionable_message": _actionable_next_step(volume.status, volume.reason),
        }
        for volume in volumes
    ]


def _build_restore_rows(volumes: list[RestoreVolumeInfo]) -> list[dict[str, str]]:
    return [
        {
            "source_namespace": volume.source_namespace,
            "pvc": volume.persistent_volume_claim,
            "source_volume": volume.source_volume,
            "restore_volume": volume.restore_volume,
            "status": volume.status or "Pending",
            "actionable_message": _actionable_next_step(volume.status, volume.reason),
        }
        for volume in volumes
    ]


def _job_finished(volumes: list[BackupVolumeInfo] | list[RestoreVolumeInfo]) -> bool:
    return bool(volumes) and all(is_terminal(volume.status) for volume in volumes)


def _count_failed(volumes: list[BackupVolumeInfo] | list[RestoreVolumeInfo]) -> int:
    return sum(1 for volume in volumes if volume.status == STATUS_FAILED)


def _restore_ready(volumes: list[BackupVolumeInfo]) -> bool:
    return _job_finished(volumes) and _count_failed(volumes) == 0


def _new_job_name(prefix: str) -> str:
    timestamp = datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{timestamp}"


def _build_workflow_rows(
    *,
    connected: bool,
    discovered_count: int,
    backup_finished: bool,
    backup_started: bool,
    restore_started: bool,
) -> list[dict[str, str]]:
    connect_state = "done" if connected else "active"
    discover_state = "done" if discovered_count > 0 else ("active" if connected else "blocked")
    backup_state = "done" if backup_started else ("active" if discovered_count > 0 else "blocked")
    poll_state = "done" if backup_finished else ("active" if backup_started else "blocked")
    restore_state = "done" if restore_started else ("active" if backup_finished else "blocked")

    return [
        {
            "step": "1. Connect",
            "state": _WORKFLOW_STATE_LABELS[connect_state],
            "description": "Authenticate to the cluster and resolve the Azure scope.",
        },
        {
            "step": "2. Discover",
            "state": _WORKFLOW_STATE_LABELS[discover_state],
            "description": "List PVCs in a namespace and classify Azure disk ownership.",
        },
        {
            "step": "3. Snapshot",
            "state": _WORKFLOW_STATE_LABELS[backup_state],
            "description": "Start Azure snapshots for the selected PVCs.",
        },
        {
            "step": "4. Poll",
            "state": _WORKFLOW_STATE_LABELS[poll_state],
            "description": "Refresh snapshot status until every volume is terminal.",
        },
        {
            "step": "5. Restore",
            "state": _WORKFLOW_STATE_LABELS[restore_state],
            "description": "Create new disks from the snapshots and track them.",
        },
    ]


def _validate_connection_inputs(*, auth_mode: str, kubeconfig_path_input: str, kubeconfig_text_input: str) -> str | None:
    if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
        return _validate_kubeconfig_path_input(kubeconfig_path_input)

    if auth_mode == _AUTH_MODE_PASTE_KUBECONFIG:
        kubeconfig_text = kubeconfig_text_input.strip()
        if not kubeconfig_text:
            return "Paste kubeconfig content before connecting."
        return _validate_kubeconfig_content(
            kubeconfig_content=kubeconfig_text,
            source_label="Pasted kubeconfig",
        )

    if auth_mode == _AUTH_MODE_IN_CLUSTER and not _is_incluster_service_account_environment():
        return (
            "In-cluster service account mode requires Kubernetes pod environment variables and the "
            "service-account token mount."
        )

    return None


def _default_auth_mode() -> str:
    configured_default = os.getenv("AZDSD_DEFAULT_AUTH_MODE", "").strip().lower()
    if configured_default in {"kubeconfig", "kubeconfig_path", "path"}:
        return _AUTH_MODE_USE_KUBECONFIG_PATH
    if configured_default in {"paste", "pasted", "kubeconfig_text"}:
        return _AUTH_MODE_PASTE_KUBECONFIG
    if configured_default in {"in-cluster", "in_cluster", "serviceaccount", "service-account"}:
        return _AUTH_MODE_IN_CLUSTER

    if _is_incluster_service_account_environment():
        return _AUTH_MODE_IN_CLUSTER

    return _AUTH_MODE_USE_KUBECONFIG_PATH


def _is_incluster_service_account_environment() -> bool:
    return bool(
        os.getenv("KUBERNETES_SERVICE_HOST")
        and Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists()
    )


def _auth_mode_guidance(auth_mode: str) -> str:
    if auth_mode == _AUTH_MODE_IN_CLUSTER:
        return (
            "Primary mode when the console runs inside the AKS cluster. Uses ServiceAccount credentials "
            "from the running pod; Azure credentials come from the pod's workload identity."
        )
    if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
        return (
            "Use for local runs against an AKS cluster. Provide a readable kubeconfig file path; Azure "
            "credentials come from the environment or an Azure CLI login."
        )
    return (
        "Use only for short-lived troubleshooting. Paste a full kubeconfig with apiVersion, clusters, "
        "contexts, and users."
    )


def _validate_kubeconfig_path_input(kubeconfig_path_input: str) -> str | None:
    path_value = kubeconfig_path_input.strip()
    if not path_value:
        return "Kubeconfig path is required when using kubeconfig path authentication."

    expanded_path = Path(path_value).expanduser()
    if not expanded_path.exists():
        return f"Kubeconfig path does not exist: {expanded_path}"
    if not expanded_path.is_file():
        return f"Kubeconfig path must point to a file: {expanded_path}"

    try:
        kubeconfig_content = expanded_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return f"Kubeconfig path must reference a UTF-8 text file: {expanded_path}"
    except OSError as error:
        return f"Unable to read kubeconfig path {expanded_path}: {error}"

    return _validate_kubeconfig_content(
        kubeconfig_content=kubeconfig_content,
        source_label=f"Kubeconfig file '{expanded_path}'",
    )


def _validate_kubeconfig_content(*, kubeconfig_content: str, source_label: str) -> str | None:
    try:
        parsed = yaml.safe_load(kubeconfig_content)
    except yaml.YAMLError as error:
        return f"{source_label} must be valid YAML: {error.__class__.__name__}."

    if not isinstance(parsed, dict):
        return f"{source_label} must be a YAML mapping."

    required_fields = ("apiVersion", "clusters", "contexts", "users")
    missing_fields = [field for field in required_fields if field not in parsed]
    if missing_fields:
        missing_fields_csv = ", ".join(missing_fields)
        return f"{source_label} is missing required field(s): {missing_fields_csv}."

    for list_field in ("clusters", "contexts", "users"):
        values = parsed.get(list_field)
        if not isinstance(values, list) or not values:
            return f"{source_label} must include at least one '{list_field}' entry."

    return None


def _connect(*, auth_mode: str, context: str, kubeconfig_path_input: str, kubeconfig_text_input: str) -> None:
    kubeconfig_path: str | None = None
    in_cluster = auth_mode == _AUTH_MODE_IN_CLUSTER
    if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
        kubeconfig_path = str(Path(kubeconfig_path_input).expanduser())
    elif auth_mode == _AUTH_MODE_PASTE_KUBECONFIG:
        kubeconfig_path = persist_kubeconfig_content(kubeconfig_text_input)

    clients = load_kubernetes_clients(
        kubeconfig_path=kubeconfig_path,
        context=context or None,
        in_cluster=in_cluster,
    )
    driver = initialize_driver(DriverConfig(), directory=VolumeDirectory.from_clients(clients))

    st.session_state.connected = True
    st.session_state.driver = driver
    st.session_state.connection = {
        "auth_mode": auth_mode,
        "context": context or None,
        "in_cluster": in_cluster,
        "subscription_id": driver.scope.subscription_id,
        "resource_group": driver.scope.resource_group,
    }
    _reset_jobs()


def _reset_jobs() -> None:
    st.session_state.claims = []
    st.session_state.owned_claims = {}
    st.session_state.backup_job = None
    st.session_state.restore_job = None
    st.session_state.selected_claim_labels = []


def main() -> None:
    st.set_page_config(page_title="Azure Disk Snapshots", layout="wide")
    _initialize_state()
    base_config = DriverConfig()

    st.title("Azure Disk Snapshots")
    st.caption("Snapshot Azure-disk backed PVCs, track provisioning, and restore them to new disks.")
    backup_job: BackupJob | None = st.session_state.backup_job
    restore_job: RestoreJob | None = st.session_state.restore_job
    st.subheader("Workflow Status")
    st.dataframe(
        _build_workflow_rows(
            connected=bool(st.session_state.connected and st.session_state.driver is not None),
            discovered_count=len(st.session_state.claims),
            backup_finished=backup_job is not None and _job_finished(backup_job.volumes),
            backup_started=backup_job is not None,
            restore_started=restore_job is not None,
        ),
        use_container_width=True,
        hide_index=True,
    )

    st.sidebar.header("Cluster Connection")
    auth_options = [_AUTH_MODE_USE_KUBECONFIG_PATH, _AUTH_MODE_PASTE_KUBECONFIG, _AUTH_MODE_IN_CLUSTER]
    auth_mode = st.sidebar.radio(
        "Authentication",
        options=auth_options,
        index=auth_options.index(_default_auth_mode()),
    )
    st.sidebar.caption(_auth_mode_guidance(auth_mode))
    context = st.sidebar.text_input("Kubernetes context (optional)", value="")

    kubeconfig_path_input = "~/.kube/config"
    kubeconfig_text_input = ""
    if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
        kubeconfig_path_input = st.sidebar.text_input("Kubeconfig path", value="~/.kube/config")
    elif auth_mode == _AUTH_MODE_PASTE_KUBECONFIG:
        kubeconfig_text_input = st.sidebar.text_area("Kubeconfig content", height=220)

    if st.sidebar.button("Connect", type="primary"):
        connection_error = _validate_connection_inputs(
            auth_mode=auth_mode,
            kubeconfig_path_input=kubeconfig_path_input,
            kubeconfig_text_input=kubeconfig_text_input,
        )
        if connection_error:
            st.sidebar.error(connection_error)
        else:
            try:
                _connect(
                    auth_mode=auth_mode,
                    context=context,
                    kubeconfig_path_input=kubeconfig_path_input,
                    kubeconfig_text_input=kubeconfig_text_input,
                )
                st.success("Connected to the cluster and resolved the Azure scope.")
            except DriverError as error:
                st.session_state.connected = False
                st.session_state.driver = None
                st.error(f"Connection failed: {error}")

    if st.sidebar.button("Disconnect"):
        st.session_state.connected = False
        st.session_state.driver = None
        st.session_state.connection = {}
        _reset_jobs()

    driver: AzureDiskDriver | None = st.session_state.driver
    if not st.session_state.connected or driver is None:
        st.info("Connect to a cluster from the sidebar to start snapshot operations.")
        return

    st.sidebar.caption(
        f"Subscription: {st.session_state.connection.get('subscription_id')} | "
        f"Resource group: {st.session_state.connection.get('resource_group')}"
    )

    st.subheader("Volume Discovery")
    namespace = st.text_input("Namespace", value=base_config.default_namespace).strip()
    if st.button("Refresh claims"):
        with st.spinner("Listing PVCs and classifying ownership..."):
            try:
                claims = driver.directory.list_claims(namespace)
                st.session_state.claims = claims
                st.session_state.owned_claims = {
                    f"{claim.metadata.namespace}/{claim.metadata.name}": driver.owns_claim(claim) for claim in claims
                }
                st.session_state.selected_claim_labels = []
                if not claims:
                    st.warning(f"No PVCs found in namespace '{namespace}'.")
            except DriverError as error:
                st.error(str(error))

    claims: list[Any] = st.session_state.claims
    if claims:
        owned: dict[str, bool] = st.session_state.owned_claims
        st.dataframe(_build_claim_rows(claims, owned), use_container_width=True, hide_index=True)
        owned_claims = [
            claim for claim in claims if owned.get(f"{claim.metadata.namespace}/{claim.metadata.name}")
        ]
        labels = [_label_for_claim(claim) for claim in owned_claims]
        label_to_claim = dict(zip(labels, owned_claims, strict=False))
        selected_labels = st.multiselect(
            "Choose Azure-disk PVCs to snapshot",
            options=labels,
            key="selected_claim_labels",
        )

        if st.button("Start backup"):
            if not selected_labels:
                st.warning("Select at least one PVC.")
            else:
                job = BackupJob(name=_new_job_name("backup"), namespace=namespace, uid=str(uuid.uuid4()))
                try:
                    job.volumes.extend(driver.start_backup(job, [label_to_claim[label] for label in selected_labels]))
                    st.session_state.backup_job = job
                    st.session_state.restore_job = None
                    st.success(f"Started {len(job.volumes)} snapshot(s) for backup {job.name}.")
                except DriverError as error:
                    st.error(f"Backup failed to start: {error}")

    backup_job = st.session_state.backup_job
    if backup_job is not None:
        st.subheader(f"Backup {backup_job.name}")
        columns = st.columns(3)
        if columns[0].button("Refresh backup status"):
            try:
                driver.get_backup_status(backup_job)
            except DriverError as error:
                st.error(f"Status refresh failed: {error}")
        if columns[1].button("Restore from backup", disabled=not _restore_ready(backup_job.volumes)):
            restore = RestoreJob(name=_new_job_name("restore"), namespace=backup_job.namespace, uid=str(uuid.uuid4()))
            try:
                restore.volumes.extend(driver.start_restore(restore, backup_job.volumes))
                st.session_state.restore_job = restore
            except DriverError as error:
                st.error(f"Restore failed to start: {error}")
        if columns[2].button("Delete backup"):
            try:
                driver.delete_backup(backup_job)
                st.session_state.backup_job = None
                st.success(f"Deleted snapshots of backup {backup_job.name}.")
            except DriverError as error:
                st.error(f"Backup deletion failed: {error}")

        if st.session_state.backup_job is not None:
            st.dataframe(_build_backup_rows(backup_job.volumes), use_container_width=True, hide_index=True)
            failed_count = _count_failed(backup_job.volumes)
            if failed_count:
                st.error(f"{failed_count} of {len(backup_job.volumes)} snapshot(s) failed.")

    restore_job = st.session_state.restore_job
    if restore_job is not None:
        st.subheader(f"Restore {restore_job.name}")
        if st.button("Refresh restore status"):
            try:
                driver.get_restore_status(restore_job)
            except DriverError as error:
                st.error(f"Status refresh failed: {error}")
        st.dataframe(_build_restore_rows(restore_job.volumes), use_container_width=True, hide_index=True)
        failed_count = _count_failed(restore_job.volumes)
        if failed_count:
            st.error(f"{failed_count} of {len(restore_job.volumes)} restored disk(s) failed.")


if __name__ == "__main__":
    main()
