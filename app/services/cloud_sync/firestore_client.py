"""
Firestore REST (v1) client for the per-user document mirror.

Only the calls the sync adapter needs are wrapped: atomic batch commit,
collection listing and a cheap read used as a connectivity check.
Documents are sent in Firestore's typed value encoding.
"""

import math
import httpx
from datetime import datetime, date, timezone
from typing import List, Dict, Any, Optional
from app.core.config import settings
from app.core.exceptions import RetryableSyncError, NonRetryableSyncError
from app.core.logging_config import logger

QUOTA_STATUS = "RESOURCE_EXHAUSTED"

# Failures that will not change on retry
NON_RETRYABLE_STATUSES = {"PERMISSION_DENIED", "NOT_FOUND", "INVALID_ARGUMENT", "ALREADY_EXISTS"}

HTTP_STATUS_NAMES = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    409: "ALREADY_EXISTS",
    429: QUOTA_STATUS,
    500: "INTERNAL",
    503: "UNAVAILABLE",
    504: "DEADLINE_EXCEEDED",
}


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.isoformat()}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def strip_absent(value: Any) -> Any:
    """
    Recursively drop None, NaN and infinite values from dicts and lists.

    Firestore rejects documents carrying undefined fields; None is this
    side's equivalent.
    """
    if isinstance(value, dict):
        return {
            key: strip_absent(item)
            for key, item in value.items()
            if not _is_absent(item)
        }
    if isinstance(value, (list, tuple)):
        return [strip_absent(item) for item in value if not _is_absent(item)]
    return value


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, float) and not math.isfinite(value))


def classify_error(status_code: int, payload: Optional[Dict[str, Any]]) -> Exception:
    """Turn a failed Firestore response into a retryable or non-retryable error."""
    error = (payload or {}).get("error", {}) if isinstance(payload, dict) else {}
    status = error.get("status") or HTTP_STATUS_NAMES.get(status_code, "UNKNOWN")
    message = error.get("message") or f"Firestore request failed with HTTP {status_code}"

    if status in NON_RETRYABLE_STATUSES:
        return NonRetryableSyncError(message, status=status)
    return RetryableSyncError(message, status=status)


class FirestoreClient:
    """Async client for the Firestore REST API."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Firestore client.

        Args:
            project_id: Firebase project (defaults to env var)
            api_key: Web API key (defaults to env var)
            base_url: REST root, overridable for the emulator
            access_token: OAuth bearer token; requests use the API key alone when unset
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.project_id = project_id or settings.FIREBASE_PROJECT_ID
        self.api_key = api_key or settings.FIREBASE_API_KEY
        self.base_url = (base_url or settings.FIRESTORE_BASE_URL).rstrip("/")
        self.access_token = access_token or settings.FIRESTORE_ACCESS_TOKEN

        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            params={"key": self.api_key} if self.api_key else None,
            timeout=timeout or settings.FIRESTORE_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def documents_root(self) -> str:
        return f"projects/{self.project_id}/databases/(default)/documents"

    def document_name(self, path: str) -> str:
        return f"{self.documents_root}/{path}"

    def update_write(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Full-document set of ``path``."""
        return {"update": {"name": self.document_name(path), "fields": encode_fields(data)}}

    def delete_write(self, path: str) -> Dict[str, Any]:
        return {"delete": self.document_name(path)}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RetryableSyncError(f"Firestore request timed out: {str(e)}", status="DEADLINE_EXCEEDED") from e
        except httpx.TransportError as e:
            raise RetryableSyncError(f"Network error talking to Firestore: {str(e)}", status="UNAVAILABLE") from e

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            raise classify_error(response.status_code, payload)

        return response

    async def commit(self, writes: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Apply writes atomically (all or none).

        Raises:
            RetryableSyncError: Transient failure, including RESOURCE_EXHAUSTED
            NonRetryableSyncError: Permission, not-found, invalid-argument, already-exists
        """
        response = await self._request(
            "POST",
            f"/{self.documents_root}:commit",
            json={"writes": writes},
        )
        logger.debug(f"Firestore commit of {len(writes)} writes succeeded")
        return response.json()

    async def list_document_paths(self, collection_path: str, page_size: int = 500) -> List[str]:
        """Paths (relative to the documents root) of every document in a collection."""
        paths = []
        page_token = None
        prefix = f"{self.documents_root}/"

        while True:
            params: Dict[str, Any] = {"pageSize": page_size, "mask.fieldPaths": "__name__"}
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", f"/{self.document_name(collection_path)}", params=params)
            data = response.json()

            for document in data.get("documents", []):
                name = document.get("name", "")
                paths.append(name.split(prefix, 1)[-1])

            page_token = data.get("nextPageToken")
            if not page_token:
                return paths

    async def ping(self, path: str) -> None:
        """
        Read one document to prove the backend is reachable.

        A missing document still counts as reachable.
        """
        try:
            await self._request("GET", f"/{self.document_name(path)}")
        except NonRetryableSyncError as e:
            if e.status != "NOT_FOUND":
                raise

    async def aclose(self) -> None:
        await self._client.aclose()
