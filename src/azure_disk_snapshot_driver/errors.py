from __future__ import annotations


class DriverError(RuntimeError):
    """Base class for every error raised by the Azure disk driver."""


class ConfigurationError(DriverError):
    """Raised when the operating scope or credentials cannot be resolved."""


class MissingScopeKeyError(ConfigurationError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Azure instance metadata does not contain required key '{key}'")
        self.key = key


class VolumeLookupError(DriverError, LookupError):
    """Raised when a referenced claim, volume, storage class, disk or snapshot does not exist."""


class RemoteServiceError(DriverError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class RemoteResourceNotFoundError(RemoteServiceError, VolumeLookupError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class NotSupportedError(DriverError):
    def __init__(self, capability: str) -> None:
        super().__init__(f"{capability} is not supported by the azure driver")
        self.capability = capability


class SnapshotCleanupError(DriverError):
    def __init__(self, failures: list[tuple[str, RemoteServiceError]]) -> None:
        details = "; ".join(f"{snapshot_name}: {error}" for snapshot_name, error in failures)
        super().__init__(f"Failed to delete {len(failures)} snapshot(s): {details}")
        self.failures = failures


class DriverRegistrationError(DriverError):
    """Raised when a driver name is registered twice."""
