"""Shared fixtures for router tests."""

import pytest

from dlq_router.checkpoint import CheckpointTracker, MemoryCheckpointStore
from dlq_router.retry import RetryConfig
from dlq_router.schema_validator import RecordShape, SchemaValidator
from dlq_router.sinks import MemorySink


@pytest.fixture
def event_shape() -> RecordShape:
    return RecordShape.of("id", "event_time", name="event")


@pytest.fixture
def validator(event_shape) -> SchemaValidator:
    return SchemaValidator(event_shape)


@pytest.fixture
def store() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()


@pytest.fixture
def tracker(store) -> CheckpointTracker:
    return CheckpointTracker(store)


@pytest.fixture
def valid_sink() -> MemorySink:
    return MemorySink("valid")


@pytest.fixture
def dead_letter_sink() -> MemorySink:
    return MemorySink("dead_letter")


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry config with no backoff delay."""
    return RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0)
