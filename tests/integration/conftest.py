from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator
import os

import pytest

from azure_disk_snapshot_driver.config import DriverConfig
from azure_disk_snapshot_driver.driver import AzureDiskDriver, initialize_driver
from azure_disk_snapshot_driver.errors import ConfigurationError
from azure_disk_snapshot_driver.k8s import VolumeDirectory, load_kubernetes_clients

_ENV_RUN_FLAG = "AZDSD_RUN_AKS_INTEGRATION"
_ENV_NAMESPACE = "AZDSD_IT_NAMESPACE"
_ENV_CLAIM = "AZDSD_IT_PVC"
_ENV_KUBECONFIG = "AZDSD_IT_KUBECONFIG"


@dataclass(frozen=True)
class AksTarget:
    driver: AzureDiskDriver
    namespace: str
    claim_name: str


def _flag_enabled(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _verify_prerequisites() -> tuple[str, str]:
    if not _flag_enabled(os.getenv(_ENV_RUN_FLAG)):
        pytest.skip(
            "AKS integration tests are disabled by default. "
            f"Set {_ENV_RUN_FLAG}=1 to run them from an Azure VM with access to the cluster.",
            allow_module_level=True,
        )

    namespace = os.getenv(_ENV_NAMESPACE, "").strip()
    claim_name = os.getenv(_ENV_CLAIM, "").strip()
    missing = [name for name, value in ((_ENV_NAMESPACE, namespace), (_ENV_CLAIM, claim_name)) if not value]
    if missing:
        pytest.skip(
            f"AKS integration settings are missing: {', '.join(missing)}.",
            allow_module_level=True,
        )
    return namespace, claim_name


@pytest.fixture(scope="session")
def aks_target() -> Iterator[AksTarget]:
    namespace, claim_name = _verify_prerequisites()
    clients = load_kubernetes_clients(
        kubeconfig_path=os.getenv(_ENV_KUBECONFIG) or None,
        context=None,
        in_cluster=False,
    )
    try:
        try:
            driver = initialize_driver(DriverConfig(), directory=VolumeDirectory.from_clients(clients))
        except ConfigurationError as error:
            pytest.skip(f"Azure scope could not be resolved on this host: {error}")
        yield AksTarget(driver=driver, namespace=namespace, claim_name=claim_name)
    finally:
        clients.api_client.close()
