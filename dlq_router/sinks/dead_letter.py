"""Dead Letter Queue sink for records that failed validation.

Keeps the original payload next to the failure reason and the source
position, so a record can be inspected and replayed by hand.
"""

import logging
from typing import Any, Optional

import pyarrow as pa
from deltalake import DeltaTable, write_deltalake
from deltalake.exceptions import DeltaError

from ..exceptions import SinkWriteError
from ..records import DEAD_LETTER_OUTPUT, ClassifiedRecord

logger = logging.getLogger(__name__)


DLQ_SCHEMA = pa.schema(
    [
        pa.field("error_message", pa.string(), nullable=False),
        pa.field("error_type", pa.string(), nullable=False),
        pa.field("original_payload", pa.string(), nullable=False),
        pa.field("source", pa.string(), nullable=False),
        pa.field("_partition", pa.int32()),
        pa.field("_offset", pa.int64()),
        pa.field("_ingested_at", pa.timestamp("us", tz="UTC")),
        pa.field("record_key", pa.string(), nullable=True),
    ]
)

DLQ_COLUMN_NAMES = [field.name for field in DLQ_SCHEMA]


def to_dlq_row(record: ClassifiedRecord) -> dict[str, Any]:
    raw = record.raw
    return {
        "error_message": record.reason or "",
        "error_type": record.error_type or "UNKNOWN",
        "original_payload": raw.payload_text(),
        "source": raw.source,
        "_partition": raw.partition,
        "_offset": raw.offset,
        "_ingested_at": raw.ingested_at,
        "record_key": raw.key.decode("utf-8", errors="replace") if raw.key else None,
    }


class DeadLetterSink:
    """Appends dead-letter records to a DLQ Delta table."""

    def __init__(
        self,
        table_path: str,
        storage_options: Optional[dict[str, str]] = None,
        name: str = DEAD_LETTER_OUTPUT,
    ):
        self.name = name
        self.table_path = table_path
        self.storage_options = storage_options

    def initialize_table(self) -> None:
        try:
            DeltaTable.create(
                table_uri=self.table_path,
                schema=DLQ_SCHEMA,
                mode="ignore",
                storage_options=self.storage_options,
            )
        except (DeltaError, OSError) as e:
            logger.warning(f"Could not initialize DLQ table {self.table_path}: {e}")

    def write(self, records: list[ClassifiedRecord]) -> None:
        if not records:
            return

        table = pa.Table.from_pylist([to_dlq_row(r) for r in records], schema=DLQ_SCHEMA)
        try:
            write_deltalake(
                self.table_path,
                table,
                mode="append",
                storage_options=self.storage_options,
            )
        except (DeltaError, OSError) as e:
            raise SinkWriteError(
                f"Failed to write {len(records)} records to {self.table_path}: {e}",
                details={"output": self.name},
            ) from e

    def close(self) -> None:
        pass
