"""Custom exception hierarchy for the backend discovery daemon."""


class DiscoveryError(Exception):
    """Base exception for all daemon errors."""


class ConfigError(DiscoveryError):
    """Invalid or missing configuration."""


class BackendUnavailableError(DiscoveryError):
    """The backend lister could not return the desired state."""


class KubeAPIError(DiscoveryError):
    """Error communicating with the target Kubernetes API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.reason = reason


class KubeNotFound(KubeAPIError):
    """HTTP 404 — the object does not exist."""

    def __init__(self, message: str = "Object not found", response_body: str | None = None):
        super().__init__(message, status_code=404, response_body=response_body, reason="NotFound")


class KubeAlreadyExists(KubeAPIError):
    """HTTP 409 with reason AlreadyExists — create of an existing object."""

    def __init__(self, message: str = "Object already exists", response_body: str | None = None):
        super().__init__(message, status_code=409, response_body=response_body, reason="AlreadyExists")


class KubeConflict(KubeAPIError):
    """HTTP 409 — the resourceVersion changed between read and write."""

    def __init__(self, message: str = "Object version conflict", response_body: str | None = None):
        super().__init__(message, status_code=409, response_body=response_body, reason="Conflict")


class SyncActionError(DiscoveryError):
    """Applying an action against the target cluster failed."""

    def __init__(self, message: str, operation: str):
        super().__init__(message)
        self.operation = operation


class UnknownActionError(DiscoveryError):
    """An item of an unrecognised kind reached the sync queue."""
