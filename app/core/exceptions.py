"""Errors raised outside the request/response layer.

Service code that answers HTTP requests raises ``HTTPException`` directly;
the classes here cover file ingestion and the remote sync path, which also
run from scripts and background tasks.
"""

from typing import List, Optional


class EmptySurveyError(ValueError):
    """Raised when an uploaded file yields zero valid rows."""


class CloudSyncError(Exception):
    """Base class for remote document store failures.

    Attributes:
        status: Remote status code (e.g. ``RESOURCE_EXHAUSTED``) when known
    """

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class RetryableSyncError(CloudSyncError):
    """Transient failure (network blip, unavailable backend, timeout)."""


class NonRetryableSyncError(CloudSyncError):
    """Failure that will not succeed on retry (permission, not found, bad request)."""


class QuotaExceededError(CloudSyncError):
    """Write quota or rate limit exhausted after all quota retries."""


class CloudSyncNotConfiguredError(CloudSyncError):
    """Remote backend credentials are missing from the environment."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(
            "Cloud sync is not configured. Set "
            + ", ".join(missing)
            + " in the environment to enable it."
        )
