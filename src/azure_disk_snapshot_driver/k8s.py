from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import tempfile
from typing import Callable, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException

from .errors import DriverError, VolumeLookupError

DEFAULT_REQUEST_TIMEOUT_SECONDS = 20
T = TypeVar("T")


@dataclass(frozen=True)
class KubernetesClients:
    api_client: client.ApiClient
    core_api: client.CoreV1Api
    storage_api: client.StorageV1Api


class KubernetesAuthenticationError(DriverError):
    """Raised when Kubernetes authentication configuration fails."""


class VolumeDirectoryError(DriverError):
    """Raised when the cluster API fails for a reason other than a missing object."""


def persist_kubeconfig_content(kubeconfig_content: str) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as handle:
        handle.write(kubeconfig_content)
        path = Path(handle.name)
    os.chmod(path, 0o600)
    return str(path)


def load_kubernetes_clients(
    *,
    kubeconfig_path: str | None,
    context: str | None,
    in_cluster: bool,
) -> KubernetesClients:
    expanded = _expand_kubeconfig_path(kubeconfig_path)
    try:
        if in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=expanded, context=context)
    except Exception as error:  # pylint: disable=broad-except
        raise KubernetesAuthenticationError(
            _format_authentication_error(
                in_cluster=in_cluster,
                kubeconfig_path=expanded,
                context=context,
                error=error,
            )
        ) from error

    api_client = client.ApiClient()
    return KubernetesClients(
        api_client=api_client,
        core_api=client.CoreV1Api(api_client),
        storage_api=client.StorageV1Api(api_client),
    )


class VolumeDirectory:
    """Read-only view of claims, volumes and storage classes.

    Every lookup maps a 404 from the API server to ``VolumeLookupError`` so the
    claim -> volume name -> volume chain reports exactly which link is missing.
    """

    def __init__(
        self,
        *,
        core_api: client.CoreV1Api,
        storage_api: client.StorageV1Api,
        request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        self.core_api = core_api
        self.storage_api = storage_api
        self.request_timeout_seconds = request_timeout_seconds

    @classmethod
    def from_clients(cls, clients: KubernetesClients, **kwargs: int) -> VolumeDirectory:
        return cls(core_api=clients.core_api, storage_api=clients.storage_api, **kwargs)

    def get_claim(self, *, namespace: str, name: str) -> client.V1PersistentVolumeClaim:
        return self._lookup(
            operation=f"read PVC '{namespace}/{name}'",
            func=lambda: self.core_api.read_namespaced_persistent_volume_claim(
                name=name,
                namespace=namespace,
                _request_timeout=self.request_timeout_seconds,
            ),
        )

    def list_claims(self, namespace: str) -> list[client.V1PersistentVolumeClaim]:
        return self._lookup(
            operation=f"list PVCs in namespace '{namespace}'",
            func=lambda: self.core_api.list_namespaced_persistent_volume_claim(
                namespace=namespace,
                _request_timeout=self.request_timeout_seconds,
            ).items,
        )

    def get_volume_name_for_claim(self, claim: client.V1PersistentVolumeClaim) -> str:
        namespace = claim.metadata.namespace or ""
        name = claim.metadata.name or ""
        current = self.get_claim(namespace=namespace, name=name)
        volume_name = current.spec.volume_name if current.spec else None
        if not volume_name:
            raise VolumeLookupError(f"PVC '{namespace}/{name}' is not bound to a persistent volume")
        return volume_name

    def get_persistent_volume(self, name: str) -> client.V1PersistentVolume:
        if not name:
            raise VolumeLookupError("persistent volume name is empty")
        return self._lookup(
            operation=f"read PV '{name}'",
            func=lambda: self.core_api.read_persistent_volume(
                name=name,
                _request_timeout=self.request_timeout_seconds,
            ),
        )

    def get_storage_class(self, name: str) -> client.V1StorageClass:
        return self._lookup(
            operation=f"read StorageClass '{name}'",
            func=lambda: self.storage_api.read_storage_class(
                name=name,
                _request_timeout=self.request_timeout_seconds,
            ),
        )

    def _lookup(self, *, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except ApiException as error:
            message = _format_api_exception_message(operation=operation, error=error)
            if error.status == 404:
                raise VolumeLookupError(message) from error
            raise VolumeDirectoryError(message) from error


def _format_api_exception_message(*, operation: str, error: ApiException) -> str:
    status = error.status if error.status is not None else "unknown"
    reason = error.reason or "no reason provided"
    return f"Kubernetes lookup failed while trying to {operation}: API status {status} ({reason})"


def _expand_kubeconfig_path(kubeconfig_path: str | None) -> str | None:
    if kubeconfig_path is None:
        return None
    stripped = kubeconfig_path.strip()
    if not stripped:
        return None
    return str(Path(stripped).expanduser())


def _format_authentication_error(
    *,
    in_cluster: bool,
    kubeconfig_path: str | None,
    context: str | None,
    error: Exception,
) -> str:
    reason = str(error).strip() or error.__class__.__name__
    if in_cluster:
        return (
            "Kubernetes authentication setup failed while loading in-cluster service account credentials: "
            f"{reason}. Ensure the pod has a mounted service account token and Kubernetes service host "
            "environment variables."
        )

    kubeconfig_source = kubeconfig_path or "default kubeconfig search path"
    context_message = f" with context '{context}'" if context else ""
    return (
        "Kubernetes authentication setup failed while loading kubeconfig "
        f"from '{kubeconfig_source}'{context_message}: {reason}. "
        "Verify the kubeconfig path and context are valid."
    )
