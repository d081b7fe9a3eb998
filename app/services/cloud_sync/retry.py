import asyncio
from typing import Awaitable, Callable, Optional, TypeVar
from app.core.config import settings
from app.core.exceptions import (
    CloudSyncError, RetryableSyncError, NonRetryableSyncError, QuotaExceededError
)
from app.core.logging_config import logger
from app.services.cloud_sync.firestore_client import QUOTA_STATUS

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def is_quota_error(error: Exception) -> bool:
    return isinstance(error, CloudSyncError) and error.status == QUOTA_STATUS


class RetryPolicy:
    """
    Exponential backoff for remote writes.

    Quota errors wait longer and get more attempts than other transient
    failures; non-retryable errors are raised on the first failure.
    """

    def __init__(
        self,
        retry_delay_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        quota_retry_delay_ms: Optional[int] = None,
        max_quota_retries: Optional[int] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.retry_delay_ms = settings.SYNC_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
        self.max_retries = settings.SYNC_MAX_RETRIES if max_retries is None else max_retries
        self.quota_retry_delay_ms = (
            settings.SYNC_QUOTA_RETRY_DELAY_MS if quota_retry_delay_ms is None else quota_retry_delay_ms
        )
        self.max_quota_retries = settings.SYNC_MAX_QUOTA_RETRIES if max_quota_retries is None else max_quota_retries
        self.sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """
        Run ``operation`` until it succeeds or the policy gives up.

        Raises:
            NonRetryableSyncError: Immediately, without retrying
            QuotaExceededError: After the quota retries are used up
            RetryableSyncError: The last error once ordinary retries are used up
        """
        # One counter for both kinds; each kind has its own limit and base delay
        retries = 0

        while True:
            try:
                return await operation()
            except NonRetryableSyncError as e:
                logger.error(f"{description} failed with non-retryable error ({e.status}): {str(e)}")
                raise
            except RetryableSyncError as e:
                if is_quota_error(e):
                    if retries >= self.max_quota_retries:
                        logger.error(f"{description} exhausted {self.max_quota_retries} quota retries")
                        raise QuotaExceededError(
                            "Firestore quota exceeded. The daily write limit may have been reached "
                            "or writes are being rate limited. Wait a while and try again.",
                            status=e.status
                        ) from e
                    wait_ms = self.quota_retry_delay_ms * (2 ** retries)
                    limit = self.max_quota_retries
                else:
                    if retries >= self.max_retries:
                        logger.error(f"{description} failed after {self.max_retries} retries: {str(e)}")
                        raise
                    wait_ms = self.retry_delay_ms * (2 ** retries)
                    limit = self.max_retries

                retries += 1
                logger.warning(
                    f"{description} failed ({e.status}); retry {retries}/{limit} in {wait_ms}ms"
                )
                await self.sleep(wait_ms / 1000)
