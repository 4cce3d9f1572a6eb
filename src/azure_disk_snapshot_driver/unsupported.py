from __future__ import annotations

from typing import Any, NoReturn

from .errors import NotSupportedError


def _not_supported(capability: str) -> NoReturn:
    raise NotSupportedError(capability)


class UnsupportedCapabilities:
    """Capabilities the host may ask for that Azure disks do not provide."""

    def inspect_volume(self, volume_id: str) -> Any:
        _not_supported("inspect_volume")

    def get_cluster_id(self) -> str:
        _not_supported("get_cluster_id")

    def get_nodes(self) -> list[Any]:
        _not_supported("get_nodes")

    def get_pod_volumes(self, pod_spec: Any, namespace: str) -> list[Any]:
        _not_supported("get_pod_volumes")

    def get_snapshot_plugin(self) -> None:
        return None

    def get_snapshot_type(self, snapshot: Any) -> str:
        _not_supported("get_snapshot_type")

    def get_volume_claim_templates(self, claims: list[Any]) -> list[Any]:
        _not_supported("get_volume_claim_templates")

    def create_pair(self, pair: Any) -> str:
        _not_supported("create_pair")

    def delete_pair(self, pair: Any) -> None:
        _not_supported("delete_pair")

    def start_migration(self, migration: Any) -> list[Any]:
        _not_supported("start_migration")

    def get_migration_status(self, migration: Any) -> list[Any]:
        _not_supported("get_migration_status")

    def cancel_migration(self, migration: Any) -> None:
        _not_supported("cancel_migration")

    def create_group_snapshot(self, snapshot: Any) -> Any:
        _not_supported("create_group_snapshot")

    def get_group_snapshot_status(self, snapshot: Any) -> Any:
        _not_supported("get_group_snapshot_status")

    def delete_group_snapshot(self, snapshot: Any) -> None:
        _not_supported("delete_group_snapshot")

    def get_cluster_domains(self) -> Any:
        _not_supported("get_cluster_domains")

    def activate_cluster_domain(self, domain: Any) -> None:
        _not_supported("activate_cluster_domain")

    def deactivate_cluster_domain(self, domain: Any) -> None:
        _not_supported("deactivate_cluster_domain")

    def create_volume_clones(self, clone: Any) -> None:
        _not_supported("create_volume_clones")

    def create_snapshot_restore(self, snapshot_restore: Any) -> None:
        _not_supported("create_snapshot_restore")

    def get_snapshot_restore_status(self, snapshot_restore: Any) -> None:
        _not_supported("get_snapshot_restore_status")
