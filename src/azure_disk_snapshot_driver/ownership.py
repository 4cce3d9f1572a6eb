from __future__ import annotations

import logging
from typing import Any, Callable

from .errors import DriverError
from .k8s import VolumeDirectory

PROVISIONER_NAME = "kubernetes.io/azure-disk"
PVC_PROVISIONER_ANNOTATION = "volume.beta.kubernetes.io/storage-provisioner"
PVC_STORAGE_CLASS_ANNOTATION = "volume.beta.kubernetes.io/storage-class"
PV_PROVISIONED_BY_ANNOTATION = "pv.kubernetes.io/provisioned-by"

logger = logging.getLogger(__name__)


def is_csi_provisioner(provisioner: str) -> bool:
    # CSI Azure disks are not handled yet.
    return False


class OwnershipClassifier:
    def __init__(
        self,
        *,
        directory: VolumeDirectory,
        csi_provisioner_predicate: Callable[[str], bool] = is_csi_provisioner,
    ) -> None:
        self.directory = directory
        self.csi_provisioner_predicate = csi_provisioner_predicate

    def owns_claim(self, claim: Any) -> bool:
        """Return True when the claim is provisioned by Azure disk.

        The provisioner comes from the claim annotation when the key is
        present, even if empty; otherwise from the storage class. When
        neither yields one, the bound volume decides, since the
        storage class may have been deleted after provisioning.
        """
        claim_name = _object_name(claim)
        annotations = _annotations(claim)
        if PVC_PROVISIONER_ANNOTATION in annotations:
            provisioner = annotations[PVC_PROVISIONER_ANNOTATION] or ""
        else:
            provisioner = ""
            storage_class_name = claim_storage_class_name(claim)
            if storage_class_name:
                try:
                    storage_class = self.directory.get_storage_class(storage_class_name)
                    provisioner = storage_class.provisioner or ""
                except DriverError as error:
                    logger.warning(
                        "Error getting storageclass %s for pvc %s: %s", storage_class_name, claim_name, error
                    )

        if not provisioner:
            volume_name = claim.spec.volume_name if claim.spec else None
            if not volume_name:
                logger.debug("PVC %s has no provisioner and is not bound", claim_name)
                return False
            try:
                volume = self.directory.get_persistent_volume(volume_name)
            except DriverError as error:
                logger.warning("Error getting pv %s for pvc %s: %s", volume_name, claim_name, error)
                return False
            return self.owns_volume(volume)

        if not self._matches_provisioner(provisioner):
            logger.debug("Provisioner in storageclass not Azure: %s", provisioner)
            return False
        return True

    def owns_volume(self, volume: Any) -> bool:
        provisioner = _annotations(volume).get(PV_PROVISIONED_BY_ANNOTATION)
        if provisioner is None:
            # Volumes without the annotation are trusted by their disk reference alone.
            return volume.spec is not None and volume.spec.azure_disk is not None
        if not self._matches_provisioner(provisioner):
            logger.debug("Provisioner in volume not Azure disk: %s", provisioner)
            return False
        return True

    def _matches_provisioner(self, provisioner: str) -> bool:
        return provisioner == PROVISIONER_NAME or self.csi_provisioner_predicate(provisioner)


def claim_storage_class_name(claim: Any) -> str | None:
    annotated = _annotations(claim).get(PVC_STORAGE_CLASS_ANNOTATION)
    if annotated:
        return annotated
    if claim.spec is not None and claim.spec.storage_class_name:
        return claim.spec.storage_class_name
    return None


def _annotations(obj: Any) -> dict[str, str]:
    metadata = getattr(obj, "metadata", None)
    return dict(getattr(metadata, "annotations", None) or {})


def _object_name(obj: Any) -> str:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "name", None) or "<unnamed>"
