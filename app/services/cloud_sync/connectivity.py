import asyncio
from datetime import datetime, timezone
from typing import Optional
from app.core.config import settings
from app.core.exceptions import CloudSyncError
from app.core.logging_config import logger
from app.schemas.sync import ConnectivityStatus
from app.services.cloud_sync.firestore_client import FirestoreClient

CHECKING = "checking"
CONNECTED = "connected"
ERROR = "error"
DISCONNECTED = "disconnected"

PROBE_PATH = "_connectivity/ping"


class ConnectivityMonitor:
    """
    Tracks whether the remote document store is reachable.

    States move ``checking -> connected | error`` on each check, and every
    poll or manual refresh passes through ``checking`` again. Without a
    client (backend not configured) the state stays ``disconnected``.
    """

    def __init__(
        self,
        client: Optional[FirestoreClient],
        timeout_ms: Optional[int] = None,
        poll_seconds: Optional[float] = None
    ):
        self.client = client
        self.timeout_ms = timeout_ms or settings.CONNECTIVITY_TIMEOUT_MS
        self.poll_seconds = poll_seconds or settings.CONNECTIVITY_POLL_SECONDS

        self.state = DISCONNECTED if client is None else CHECKING
        self.error: Optional[str] = None
        self.latency_ms: Optional[float] = None
        self.last_checked: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    def status(self) -> ConnectivityStatus:
        return ConnectivityStatus(
            status=self.state,
            error=self.error,
            latency_ms=self.latency_ms,
            last_checked=self.last_checked,
        )

    async def check(self) -> ConnectivityStatus:
        """Probe the backend once, giving up after the configured timeout."""
        if self.client is None:
            return self.status()

        previous = self.state
        self.state = CHECKING
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            await asyncio.wait_for(self.client.ping(PROBE_PATH), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            self._fail(f"Connection timed out after {self.timeout_ms}ms")
        except CloudSyncError as e:
            self._fail(str(e))
        else:
            if previous != CONNECTED:
                logger.info("Remote document store connected")
            self.state = CONNECTED
            self.error = None
            self.latency_ms = round((loop.time() - started) * 1000, 1)

        self.last_checked = datetime.now(timezone.utc)
        return self.status()

    def _fail(self, message: str) -> None:
        logger.warning(f"Remote document store check failed: {message}")
        self.state = ERROR
        self.error = message
        self.latency_ms = None

    async def refresh(self) -> ConnectivityStatus:
        return await self.check()

    async def _poll(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.poll_seconds)

    def start(self) -> None:
        """Start periodic checks. Does nothing when the backend is not configured."""
        if self.client is None or self._task is not None:
            return
        self._task = asyncio.create_task(self._poll())
        logger.info(f"Connectivity polling every {self.poll_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
