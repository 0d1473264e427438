class OfflineError(Exception):
    """Base class for device-side sync errors."""


class NoConnectivityError(OfflineError):
    """The device has no link or cannot reach the internet."""


class StorageError(OfflineError):
    """Local storage holds something that cannot be read."""


class DataUnavailableError(OfflineError):
    """Neither the remote service nor the local cache could supply data."""


class IncidentServiceError(OfflineError):
    """The Incident Service answered with an error, or not at all."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"
