"""
Per-user mirror of the local store in Firestore.

Every document lives under ``users/{uid}/{collection}/{document_id}``.
Row uploads are split into chunks committed one after another; a chunk
that fails after its retries aborts the upload but leaves earlier chunks
committed.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Tuple
from app.core.config import settings
from app.core.logging_config import logger
from app.schemas.sync import SyncSurveyResponse, MigrationResponse
from app.services.cloud_sync.firestore_client import FirestoreClient, strip_absent
from app.services.cloud_sync.retry import RetryPolicy, Sleep

SURVEYS_COLLECTION = "surveys"
SURVEY_DATA_COLLECTION = "surveyData"

ProgressCallback = Callable[[float], Any]
Operation = Callable[[], Awaitable[Any]]


class CloudSyncAdapter:
    """
    Batched, retried writes for one user, with an offline queue.

    Public write methods return a future: await it for the result, or drop
    it when offline and let the queue run the write later.
    """

    def __init__(
        self,
        client: FirestoreClient,
        user_id: Any,
        chunk_size: Optional[int] = None,
        chunk_delay_ms: Optional[int] = None,
        progress_start: Optional[float] = None,
        progress_end: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep
    ):
        if user_id is None or str(user_id).strip() == "":
            raise ValueError("Cloud sync requires an authenticated user id")

        self.client = client
        self.user_id = str(user_id)
        self.chunk_size = chunk_size or settings.SYNC_CHUNK_SIZE
        self.chunk_delay_ms = settings.SYNC_CHUNK_DELAY_MS if chunk_delay_ms is None else chunk_delay_ms
        self.progress_start = settings.SYNC_PROGRESS_START if progress_start is None else progress_start
        self.progress_end = settings.SYNC_PROGRESS_END if progress_end is None else progress_end
        self.retry_policy = retry_policy or RetryPolicy(sleep=sleep)
        self.sleep = sleep

        self._online = True
        self._queue: Deque[Tuple[str, Operation, asyncio.Future]] = deque()

    # Paths

    def path(self, collection: str, document_id: Optional[str] = None) -> str:
        base = f"users/{self.user_id}/{collection}"
        return f"{base}/{document_id}" if document_id is not None else base

    # Offline queue

    @property
    def online(self) -> bool:
        return self._online

    @property
    def queued_operations(self) -> int:
        return len(self._queue)

    def submit(self, description: str, operation: Operation) -> "asyncio.Future[Any]":
        """
        Run an operation now, or queue it while offline.

        Returns:
            Future resolved with the operation's result once it has run
        """
        if self._online:
            return asyncio.ensure_future(operation())

        future = asyncio.get_running_loop().create_future()
        self._queue.append((description, operation, future))
        logger.info(f"Offline: queued '{description}' for user={self.user_id} ({len(self._queue)} pending)")
        return future

    async def set_online(self, online: bool) -> int:
        """
        Switch connectivity. Going online drains the queue once.

        Returns:
            Number of queued operations that completed during the drain
        """
        was_online = self._online
        self._online = online
        logger.info(f"Cloud sync for user={self.user_id} is now {'online' if online else 'offline'}")

        if online and not was_online:
            return await self.process_queue()
        return 0

    async def process_queue(self) -> int:
        """
        Drain the operations queued before this call, oldest first.

        An operation that fails goes to the back of the queue and its caller
        keeps waiting; there is no retry limit across drains.
        """
        pending = list(self._queue)
        self._queue.clear()
        completed = 0

        for description, operation, future in pending:
            if future.cancelled():
                continue
            try:
                result = await operation()
            except Exception as e:
                logger.warning(f"Queued '{description}' failed again, re-queued: {str(e)}")
                self._queue.append((description, operation, future))
                continue
            future.set_result(result)
            completed += 1

        logger.info(
            f"Drained offline queue for user={self.user_id}: {completed}/{len(pending)} completed, "
            f"{len(self._queue)} pending"
        )
        return completed

    # Writes

    async def _commit(self, writes: List[Dict[str, Any]], description: str) -> None:
        await self.retry_policy.run(lambda: self.client.commit(writes), description=description)

    async def _commit_in_chunks(
        self,
        collection: str,
        documents: List[Tuple[str, Dict[str, Any]]],
        on_progress: Optional[ProgressCallback],
        label: str
    ) -> Tuple[int, List[float]]:
        total = len(documents)
        committed = 0
        progress = []
        span = self.progress_end - self.progress_start

        for chunk_start in range(0, total, self.chunk_size):
            chunk = documents[chunk_start:chunk_start + self.chunk_size]
            writes = [
                self.client.update_write(self.path(collection, document_id), strip_absent(data))
                for document_id, data in chunk
            ]
            chunk_number = chunk_start // self.chunk_size + 1
            await self._commit(writes, description=f"{label} chunk {chunk_number}")
            committed += len(chunk)

            value = self.progress_start + span * committed / total
            progress.append(value)
            if on_progress is not None:
                on_progress(value)

            if committed < total:
                await self.sleep(self.chunk_delay_ms / 1000)

        return len(progress), progress

    async def _save_survey_rows(
        self,
        survey_id: Any,
        rows: List[Dict[str, Any]],
        on_progress: Optional[ProgressCallback] = None
    ) -> SyncSurveyResponse:
        documents = []
        for index, row in enumerate(rows):
            document_id = f"{survey_id}_{index}"
            documents.append((document_id, {"id": document_id, "surveyId": str(survey_id), **row}))

        chunks, progress = await self._commit_in_chunks(
            SURVEY_DATA_COLLECTION, documents, on_progress, label=f"Survey {survey_id} rows"
        )
        logger.info(f"Mirrored {len(rows)} rows of survey {survey_id} in {chunks} chunks for user={self.user_id}")
        return SyncSurveyResponse(
            survey_id=survey_id,
            rows_written=len(rows),
            chunks_committed=chunks,
            progress=progress,
        )

    def save_survey_rows(
        self,
        survey_id: Any,
        rows: List[Dict[str, Any]],
        on_progress: Optional[ProgressCallback] = None
    ) -> "asyncio.Future[SyncSurveyResponse]":
        """
        Write a survey's rows in sequential chunks.

        Row ``i`` is stored as ``{survey_id}_{i}``, so re-running an upload
        overwrites rather than duplicates.

        Args:
            survey_id: Local survey id
            rows: Row documents in upload order
            on_progress: Called with a percentage after each committed chunk

        Raises:
            CloudSyncError: When a chunk fails; earlier chunks stay committed
        """
        return self.submit(
            f"save rows of survey {survey_id}",
            lambda: self._save_survey_rows(survey_id, rows, on_progress),
        )

    def save_documents(
        self,
        collection: str,
        documents: List[Tuple[str, Dict[str, Any]]]
    ) -> "asyncio.Future[int]":
        """Write many documents of one collection in chunks. Returns the chunk count."""
        async def operation():
            chunks, _ = await self._commit_in_chunks(collection, documents, None, label=collection)
            return chunks

        return self.submit(f"save {len(documents)} {collection} documents", operation)

    def save_document(self, collection: str, document_id: str, data: Dict[str, Any]) -> "asyncio.Future[str]":
        async def operation():
            await self._commit(
                [self.client.update_write(self.path(collection, document_id), strip_absent(data))],
                description=f"Save {collection}/{document_id}",
            )
            return document_id

        return self.submit(f"save {collection}/{document_id}", operation)

    def delete_document(self, collection: str, document_id: str) -> "asyncio.Future[None]":
        async def operation():
            await self._commit(
                [self.client.delete_write(self.path(collection, document_id))],
                description=f"Delete {collection}/{document_id}",
            )

        return self.submit(f"delete {collection}/{document_id}", operation)

    async def _delete_paths(self, paths: List[str], label: str) -> int:
        for chunk_start in range(0, len(paths), self.chunk_size):
            chunk = paths[chunk_start:chunk_start + self.chunk_size]
            await self._commit(
                [self.client.delete_write(path) for path in chunk],
                description=f"Delete {label} batch {chunk_start // self.chunk_size + 1}",
            )
        return len(paths)

    def delete_documents(self, collection: str, document_ids: List[str]) -> "asyncio.Future[int]":
        """Delete known documents of one collection in batches."""
        paths = [self.path(collection, document_id) for document_id in document_ids]
        return self.submit(
            f"delete {len(paths)} {collection} documents",
            lambda: self._delete_paths(paths, collection),
        )

    async def _delete_collection(self, collection: str) -> int:
        paths = await self.retry_policy.run(
            lambda: self.client.list_document_paths(self.path(collection), page_size=self.chunk_size),
            description=f"List {collection}",
        )
        deleted = await self._delete_paths(paths, collection)
        logger.info(f"Deleted {deleted} documents from {collection} for user={self.user_id}")
        return deleted

    def delete_collection(self, collection: str) -> "asyncio.Future[int]":
        """Delete every document of a collection in batches. Returns the number deleted."""
        return self.submit(f"delete collection {collection}", lambda: self._delete_collection(collection))

    async def _save_survey(
        self,
        survey_doc: Dict[str, Any],
        rows: List[Dict[str, Any]],
        on_progress: Optional[ProgressCallback] = None
    ) -> SyncSurveyResponse:
        survey_id = survey_doc["id"]
        await self._commit(
            [self.client.update_write(self.path(SURVEYS_COLLECTION, str(survey_id)), strip_absent(survey_doc))],
            description=f"Save survey {survey_id}",
        )
        return await self._save_survey_rows(survey_id, rows, on_progress)

    def save_survey(
        self,
        survey_doc: Dict[str, Any],
        rows: List[Dict[str, Any]],
        on_progress: Optional[ProgressCallback] = None
    ) -> "asyncio.Future[SyncSurveyResponse]":
        """Write survey metadata, then its rows."""
        return self.submit(
            f"save survey {survey_doc.get('id')}",
            lambda: self._save_survey(survey_doc, rows, on_progress),
        )

    async def _migrate_surveys(
        self,
        surveys: Iterable[Tuple[Dict[str, Any], List[Dict[str, Any]]]]
    ) -> MigrationResponse:
        migrated = 0
        errors = []

        for survey_doc, rows in surveys:
            try:
                await self._save_survey(survey_doc, rows)
                migrated += 1
            except Exception as e:
                logger.error(f"Migration of survey {survey_doc.get('id')} failed: {str(e)}")
                errors.append(f"Survey {survey_doc.get('id')} ({survey_doc.get('name')}): {str(e)}")

        logger.info(f"Migrated {migrated} surveys for user={self.user_id}, {len(errors)} failed")
        return MigrationResponse(migrated=migrated, failed=len(errors), errors=errors)

    def migrate_surveys(
        self,
        surveys: Iterable[Tuple[Dict[str, Any], List[Dict[str, Any]]]]
    ) -> "asyncio.Future[MigrationResponse]":
        """
        Copy many surveys, continuing past failures.

        Each failed survey adds an entry to ``errors``; the surveys that did
        succeed stay written.
        """
        surveys = list(surveys)
        return self.submit(f"migrate {len(surveys)} surveys", lambda: self._migrate_surveys(surveys))
