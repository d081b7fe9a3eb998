import asyncio
import math
from datetime import datetime, timezone

import httpx
import pytest

from app.core.exceptions import (
    NonRetryableSyncError, QuotaExceededError, RetryableSyncError
)
from app.services.cloud_sync.adapter import CloudSyncAdapter
from app.services.cloud_sync.connectivity import ConnectivityMonitor, CONNECTED, ERROR, CHECKING, DISCONNECTED
from app.services.cloud_sync.firestore_client import (
    FirestoreClient, classify_error, encode_value, strip_absent
)
from app.services.cloud_sync.retry import RetryPolicy


def _rows(count):
    return [{"specialty": f"Specialty {i}", "p50": float(i), "p25": None} for i in range(count)]


@pytest.fixture
def adapter(firestore_client, no_sleep):
    return CloudSyncAdapter(firestore_client, user_id=7, sleep=no_sleep)


class TestChunkedWrites:
    @pytest.mark.asyncio
    async def test_750_rows_use_two_paced_commits(self, adapter, firestore, no_sleep):
        progress = []

        result = await adapter.save_survey_rows(42, _rows(750), on_progress=progress.append)

        assert [len(writes) for writes in firestore.commits] == [500, 250]
        assert no_sleep.delays == [0.1]
        assert progress == pytest.approx([90.0, 100.0])
        assert all(70 <= value <= 100 for value in progress)
        assert all(a < b for a, b in zip(progress, progress[1:]))
        assert result.chunks_committed == 2
        assert result.rows_written == 750

    @pytest.mark.asyncio
    async def test_1200_rows_use_three_commits(self, adapter, firestore):
        await adapter.save_survey_rows(42, _rows(1200))

        assert [len(writes) for writes in firestore.commits] == [500, 500, 200]
        assert len(firestore.documents_in("/users/7/surveyData")) == 1200

    @pytest.mark.asyncio
    async def test_failed_chunk_keeps_earlier_chunks(self, adapter, firestore):
        firestore.failures = {2: (400, "INVALID_ARGUMENT")}

        with pytest.raises(NonRetryableSyncError):
            await adapter.save_survey_rows(42, _rows(1200))

        assert len(firestore.commits) == 1
        assert len(firestore.documents_in("/users/7/surveyData")) == 500

    @pytest.mark.asyncio
    async def test_transient_chunk_failure_is_retried(self, adapter, firestore, no_sleep):
        firestore.failures = {2: (503, "UNAVAILABLE")}

        result = await adapter.save_survey_rows(42, _rows(750))

        assert result.chunks_committed == 2
        assert firestore.attempts == 3
        assert no_sleep.delays == [0.1, 1.0]

    @pytest.mark.asyncio
    async def test_row_documents(self, adapter, firestore):
        await adapter.save_survey_rows(42, _rows(2))

        name = "projects/demo-project/databases/(default)/documents/users/7/surveyData/42_1"
        fields = firestore.documents[name]
        assert fields["id"] == {"stringValue": "42_1"}
        assert fields["surveyId"] == {"stringValue": "42"}
        assert fields["p50"] == {"doubleValue": 1.0}
        assert "p25" not in fields

    @pytest.mark.asyncio
    async def test_migration_collects_failures(self, adapter, firestore):
        firestore.failures = {3: (403, "PERMISSION_DENIED")}
        surveys = [
            ({"id": 1, "name": "MGMA"}, _rows(1)),
            ({"id": 2, "name": "Gallagher"}, _rows(1)),
            ({"id": 3, "name": "ECG"}, _rows(1)),
        ]

        result = await adapter.migrate_surveys(surveys)

        assert result.migrated == 2
        assert result.failed == 1
        assert result.errors[0].startswith("Survey 2 (Gallagher)")

    @pytest.mark.asyncio
    async def test_migration_continues_past_unexpected_errors(self, adapter, firestore, monkeypatch):
        save_survey = adapter._save_survey

        async def flaky_save(survey_doc, rows):
            if survey_doc["id"] == 2:
                raise ValueError("Out of range float values are not JSON compliant")
            return await save_survey(survey_doc, rows)

        monkeypatch.setattr(adapter, "_save_survey", flaky_save)
        surveys = [
            ({"id": 1, "name": "MGMA"}, [{"p50": 1.0}]),
            ({"id": 2, "name": "Gallagher"}, [{"p50": 2.0}]),
            ({"id": 3, "name": "ECG"}, [{"p50": 3.0}]),
        ]

        result = await adapter.migrate_surveys(surveys)

        assert result.migrated == 2
        assert result.failed == 1
        assert "not JSON compliant" in result.errors[0]
        assert len(firestore.documents_in("/users/7/surveys")) == 2

    @pytest.mark.asyncio
    async def test_infinite_values_are_not_sent(self, adapter, firestore):
        await adapter.save_survey_rows(42, [{"p50": math.inf, "p75": -math.inf, "p90": 3.0}])

        fields = firestore.documents["projects/demo-project/databases/(default)/documents/users/7/surveyData/42_0"]
        assert "p50" not in fields
        assert "p75" not in fields
        assert fields["p90"] == {"doubleValue": 3.0}

    @pytest.mark.asyncio
    async def test_delete_collection(self, adapter, firestore):
        await adapter.save_survey_rows(42, _rows(3))
        await adapter.save_document("surveys", "42", {"name": "MGMA"})

        deleted = await adapter.delete_collection("surveyData")

        assert deleted == 3
        assert firestore.documents_in("/users/7/surveyData") == []
        assert len(firestore.documents_in("/users/7/surveys")) == 1

    def test_user_id_is_required(self, firestore_client):
        with pytest.raises(ValueError):
            CloudSyncAdapter(firestore_client, user_id=None)
        with pytest.raises(ValueError):
            CloudSyncAdapter(firestore_client, user_id=" ")


class TestRetryPolicy:
    @staticmethod
    def _failing(error, succeed_after=None):
        calls = {"count": 0}

        async def operation():
            calls["count"] += 1
            if succeed_after is None or calls["count"] <= succeed_after:
                raise error
            return "ok"

        return operation, calls

    @pytest.mark.asyncio
    async def test_quota_errors_back_off_then_give_up(self, no_sleep):
        operation, calls = self._failing(RetryableSyncError("quota", status="RESOURCE_EXHAUSTED"))

        with pytest.raises(QuotaExceededError) as exc:
            await RetryPolicy(sleep=no_sleep).run(operation)

        assert calls["count"] == 6
        assert no_sleep.delays == [5, 10, 20, 40, 80]
        assert "quota exceeded" in str(exc.value).lower()

    @pytest.mark.asyncio
    async def test_transient_errors_back_off_then_reraise(self, no_sleep):
        operation, calls = self._failing(RetryableSyncError("down", status="UNAVAILABLE"))

        with pytest.raises(RetryableSyncError):
            await RetryPolicy(sleep=no_sleep).run(operation)

        assert calls["count"] == 4
        assert no_sleep.delays == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_non_retryable_errors_fail_fast(self, no_sleep):
        operation, calls = self._failing(NonRetryableSyncError("denied", status="PERMISSION_DENIED"))

        with pytest.raises(NonRetryableSyncError):
            await RetryPolicy(sleep=no_sleep).run(operation)

        assert calls["count"] == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_quota_and_transient_errors_share_one_budget(self, no_sleep):
        errors = iter([
            RetryableSyncError("down", status="UNAVAILABLE"),
            RetryableSyncError("down", status="UNAVAILABLE"),
            RetryableSyncError("down", status="UNAVAILABLE"),
            RetryableSyncError("quota", status="RESOURCE_EXHAUSTED"),
            RetryableSyncError("down", status="UNAVAILABLE"),
        ])
        calls = {"count": 0}

        async def operation():
            calls["count"] += 1
            raise next(errors)

        with pytest.raises(RetryableSyncError) as exc:
            await RetryPolicy(sleep=no_sleep).run(operation)

        assert exc.value.status == "UNAVAILABLE"
        assert calls["count"] == 5
        assert no_sleep.delays == [1, 2, 4, 40]

    @pytest.mark.asyncio
    async def test_recovers_after_a_retry(self, no_sleep):
        operation, calls = self._failing(RetryableSyncError("blip", status="INTERNAL"), succeed_after=1)

        assert await RetryPolicy(sleep=no_sleep).run(operation) == "ok"
        assert no_sleep.delays == [1]


class TestFirestoreClient:
    @pytest.mark.parametrize("status_code,payload,error_type,status", [
        (429, None, RetryableSyncError, "RESOURCE_EXHAUSTED"),
        (503, None, RetryableSyncError, "UNAVAILABLE"),
        (500, {"error": {"status": "ABORTED", "message": "contention"}}, RetryableSyncError, "ABORTED"),
        (403, None, NonRetryableSyncError, "PERMISSION_DENIED"),
        (404, None, NonRetryableSyncError, "NOT_FOUND"),
        (400, {"error": {"status": "INVALID_ARGUMENT"}}, NonRetryableSyncError, "INVALID_ARGUMENT"),
        (409, None, NonRetryableSyncError, "ALREADY_EXISTS"),
    ])
    def test_classify_error(self, status_code, payload, error_type, status):
        error = classify_error(status_code, payload)

        assert type(error) is error_type
        assert error.status == status

    def test_encode_value(self):
        when = datetime(2024, 5, 1, 12, 0)

        assert encode_value(3) == {"integerValue": "3"}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(when) == {"timestampValue": when.replace(tzinfo=timezone.utc).isoformat()}
        assert encode_value({"a": [1, "x"]}) == {"mapValue": {"fields": {"a": {"arrayValue": {"values": [
            {"integerValue": "1"}, {"stringValue": "x"},
        ]}}}}}

    def test_strip_absent(self):
        assert strip_absent({"a": None, "b": math.nan, "c": {"d": None, "e": 1}, "f": [None, 2, math.inf]}) == {
            "c": {"e": 1}, "f": [2],
        }

    @pytest.mark.asyncio
    async def test_network_error_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = FirestoreClient(project_id="p", api_key="k", transport=httpx.MockTransport(handler))

        with pytest.raises(RetryableSyncError) as exc:
            await client.commit([])

        assert exc.value.status == "UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_requests_carry_api_key(self, firestore_client, firestore):
        await firestore_client.commit([firestore_client.delete_write("users/1/surveys/1")])

        request = firestore.requests[0]
        assert request.url.params["key"] == "test-key"
        assert request.url.path == "/v1/projects/demo-project/databases/(default)/documents:commit"


class TestOfflineQueue:
    @pytest.mark.asyncio
    async def test_writes_queue_while_offline_and_drain_in_order(self, adapter, firestore):
        await adapter.set_online(False)

        first = adapter.save_document("surveys", "1", {"name": "first"})
        second = adapter.save_document("surveys", "2", {"name": "second"})

        assert adapter.queued_operations == 2
        assert firestore.commits == []

        completed = await adapter.set_online(True)

        assert completed == 2
        assert adapter.queued_operations == 0
        assert [writes[0]["update"]["name"].rsplit("/", 1)[1] for writes in firestore.commits] == ["1", "2"]
        assert await first == "1"
        assert await second == "2"

    @pytest.mark.asyncio
    async def test_failed_operation_is_requeued(self, adapter, firestore):
        await adapter.set_online(False)
        pending = adapter.save_document("surveys", "1", {"name": "first"})
        firestore.fail_always = (403, "PERMISSION_DENIED")

        assert await adapter.set_online(True) == 0
        assert adapter.queued_operations == 1
        assert not pending.done()

        firestore.fail_always = None
        assert await adapter.process_queue() == 1
        assert await pending == "1"

    @pytest.mark.asyncio
    async def test_going_offline_does_not_drain(self, adapter):
        await adapter.set_online(False)
        adapter.delete_document("surveys", "1")

        assert await adapter.set_online(False) == 0
        assert adapter.queued_operations == 1


class _SlowClient:
    async def ping(self, path):
        await asyncio.sleep(1)


class _BrokenClient:
    async def ping(self, path):
        raise RetryableSyncError("backend unavailable", status="UNAVAILABLE")


class TestConnectivityMonitor:
    @pytest.mark.asyncio
    async def test_connected(self, firestore_client):
        monitor = ConnectivityMonitor(firestore_client)
        assert monitor.state == CHECKING

        status = await monitor.check()

        assert status.status == CONNECTED
        assert status.latency_ms is not None
        assert status.last_checked is not None

    @pytest.mark.asyncio
    async def test_timeout_is_an_error(self):
        monitor = ConnectivityMonitor(_SlowClient(), timeout_ms=10)

        status = await monitor.check()

        assert status.status == ERROR
        assert "timed out" in status.error

    @pytest.mark.asyncio
    async def test_backend_error(self):
        monitor = ConnectivityMonitor(_BrokenClient())

        status = await monitor.refresh()

        assert status.status == ERROR
        assert status.error == "backend unavailable"

    @pytest.mark.asyncio
    async def test_unconfigured_stays_disconnected(self):
        monitor = ConnectivityMonitor(None)
        monitor.start()

        assert (await monitor.check()).status == DISCONNECTED
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_polling_starts_and_stops(self, firestore_client):
        monitor = ConnectivityMonitor(firestore_client, poll_seconds=60)

        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert monitor.state == CONNECTED
