"""Dead-letter record router for streaming pipelines."""

from .checkpoint import CheckpointTracker, MemoryCheckpointStore
from .exceptions import OutputWriteError, SchemaError
from .records import ClassifiedRecord, Outcome, ParsedRecord, RawRecord
from .router import RecordRouter, RouterStats
from .schema_validator import FieldSpec, RecordShape, SchemaValidator, validate

__all__ = [
    "CheckpointTracker",
    "ClassifiedRecord",
    "FieldSpec",
    "MemoryCheckpointStore",
    "Outcome",
    "OutputWriteError",
    "ParsedRecord",
    "RawRecord",
    "RecordRouter",
    "RecordShape",
    "RouterStats",
    "SchemaError",
    "SchemaValidator",
    "validate",
]
