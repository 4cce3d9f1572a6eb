from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_METADATA_URL = "http://169.254.169.254/metadata/instance/compute"
DEFAULT_METADATA_API_VERSION = "2018-02-01"


@dataclass(frozen=True)
class DriverConfig:
    metadata_url: str = os.getenv("AZDSD_METADATA_URL", DEFAULT_METADATA_URL)
    metadata_api_version: str = os.getenv("AZDSD_METADATA_API_VERSION", DEFAULT_METADATA_API_VERSION)
    metadata_timeout_seconds: float = float(os.getenv("AZDSD_METADATA_TIMEOUT_SECONDS", "3"))
    remote_timeout_seconds: int = int(os.getenv("AZDSD_REMOTE_TIMEOUT_SECONDS", "60"))
    default_namespace: str = os.getenv("AZDSD_DEFAULT_NAMESPACE", "default")


def validate_config(config: DriverConfig) -> None:
    if config.metadata_timeout_seconds <= 0:
        raise ValueError("metadata_timeout_seconds must be positive")
    if config.remote_timeout_seconds <= 0:
        raise ValueError("remote_timeout_seconds must be positive")
    if not config.metadata_url.strip():
        raise ValueError("metadata_url is required")
