"""Tests for checkpoint tracking and the durable checkpoint stores."""

import io
import json
import threading
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from dlq_router.checkpoint import CheckpointTracker, MemoryCheckpointStore, get_checkpoint_store
from dlq_router.checkpoint.s3_store import S3CheckpointStore
from dlq_router.checkpoint.sqlite_store import SqliteCheckpointStore
from dlq_router.exceptions import CheckpointOrderError, CheckpointStoreError
from dlq_router.settings import CheckpointSettings


@pytest.mark.unit
class TestCheckpointTracker:
    def test_never_committed_returns_none(self, tracker):
        assert tracker.last_committed("valid") is None

    def test_commit_then_read_back(self, tracker, store):
        tracker.commit("valid", 10)

        assert tracker.last_committed("valid") == 10
        assert store.get("valid") == 10

    def test_outputs_are_tracked_independently(self, tracker):
        tracker.commit("valid", 10)
        tracker.commit("dead_letter", 4)

        assert tracker.last_committed("valid") == 10
        assert tracker.last_committed("dead_letter") == 4

    def test_commit_cannot_move_backwards(self, tracker):
        tracker.commit("valid", 10)

        with pytest.raises(CheckpointOrderError):
            tracker.commit("valid", 9)

        assert tracker.last_committed("valid") == 10

    def test_recommitting_same_offset_does_not_write(self):
        store = MagicMock()
        store.get.return_value = 5
        tracker = CheckpointTracker(store)

        tracker.commit("valid", 5)

        store.put.assert_not_called()

    def test_reads_existing_offsets_from_store(self):
        tracker = CheckpointTracker(MemoryCheckpointStore({"valid": 42}))

        assert tracker.last_committed("valid") == 42
        with pytest.raises(CheckpointOrderError):
            tracker.commit("valid", 41)

    def test_store_failure_propagates_and_offset_unchanged(self):
        store = MagicMock()
        store.get.return_value = 3
        store.put.side_effect = CheckpointStoreError("store down")
        tracker = CheckpointTracker(store)

        with pytest.raises(CheckpointStoreError):
            tracker.commit("valid", 4)

        assert tracker.last_committed("valid") == 3

    def test_resume_offset_is_least_advanced_output(self, tracker):
        tracker.commit("valid", 10)
        tracker.commit("dead_letter", 7)

        assert tracker.resume_offset(["valid", "dead_letter"]) == 7

    def test_resume_offset_none_when_any_output_never_committed(self, tracker):
        tracker.commit("valid", 10)

        assert tracker.resume_offset(["valid", "dead_letter"]) is None

    def test_concurrent_commits_stay_monotonic(self, tracker, store):
        errors = []

        def commit_range(start):
            for offset in range(start, 200, 4):
                try:
                    tracker.commit("valid", offset)
                except CheckpointOrderError:
                    errors.append(offset)

        threads = [threading.Thread(target=commit_range, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get("valid") == tracker.last_committed("valid")
        assert tracker.last_committed("valid") == 199


@pytest.mark.unit
class TestSqliteCheckpointStore:
    def test_round_trip_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "nested" / "checkpoints.db")

        store = SqliteCheckpointStore.from_path(db_path)
        assert store.get("valid") is None
        store.put("valid", 3)
        store.put("valid", 8)

        reopened = SqliteCheckpointStore.from_path(db_path)
        assert reopened.get("valid") == 8
        assert reopened.get("dead_letter") is None

    def test_in_memory_database_shares_state(self):
        store = SqliteCheckpointStore.from_path(":memory:")

        store.put("dead_letter", 12)

        assert store.get("dead_letter") == 12


@pytest.mark.unit
class TestS3CheckpointStore:
    @pytest.fixture
    def s3_client(self):
        return MagicMock()

    @pytest.fixture
    def s3_store(self, s3_client):
        return S3CheckpointStore(s3_client, bucket_name="bucket", key_prefix="router/")

    def test_object_key_per_output(self, s3_store):
        assert s3_store.object_key("valid") == "router/valid.json"

    def test_put_writes_json_object(self, s3_store, s3_client):
        s3_store.put("valid", 99)

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["Key"] == "router/valid.json"
        assert json.loads(kwargs["Body"])["offset"] == 99

    def test_get_reads_offset(self, s3_store, s3_client):
        s3_client.get_object.return_value = {
            "Body": io.BytesIO(json.dumps({"output_name": "valid", "offset": 17}).encode())
        }

        assert s3_store.get("valid") == 17

    def test_missing_object_means_never_committed(self, s3_store, s3_client):
        s3_client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )

        assert s3_store.get("valid") is None

    def test_access_error_is_fatal(self, s3_store, s3_client):
        s3_client.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetObject"
        )

        with pytest.raises(CheckpointStoreError):
            s3_store.get("valid")

    def test_put_failure_is_fatal(self, s3_store, s3_client):
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject"
        )

        with pytest.raises(CheckpointStoreError):
            s3_store.put("valid", 1)


@pytest.mark.unit
class TestCheckpointStoreSelector:
    def test_sqlite_backend_selected_by_default(self, tmp_path):
        settings = CheckpointSettings(db_path=str(tmp_path / "cp.db"))

        store = get_checkpoint_store(settings)

        assert isinstance(store, SqliteCheckpointStore)

    def test_memory_backend(self):
        store = get_checkpoint_store(CheckpointSettings(storage_type="memory"))

        assert isinstance(store, MemoryCheckpointStore)

    def test_s3_backend_uses_configured_bucket_and_prefix(self):
        settings = CheckpointSettings(
            storage_type="s3", s3_bucket="my-bucket", s3_prefix="my-prefix"
        )

        with patch("boto3.client") as mock_boto3:
            mock_boto3.return_value = MagicMock()

            store = get_checkpoint_store(settings)

        assert isinstance(store, S3CheckpointStore)
        assert store.bucket_name == "my-bucket"
        assert store.object_key("valid") == "my-prefix/valid.json"

    def test_s3_backend_raises_error_if_boto3_not_installed(self):
        settings = CheckpointSettings(storage_type="s3")

        with (
            patch.dict("sys.modules", {"boto3": None}),
            pytest.raises(ValueError, match="S3 checkpoint backend requires boto3"),
        ):
            get_checkpoint_store(settings)
