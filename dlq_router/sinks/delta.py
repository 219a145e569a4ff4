"""Delta Lake sink for valid records."""

import json
import logging
from typing import Any, Optional

import pyarrow as pa
from deltalake import DeltaTable, write_deltalake
from deltalake.exceptions import DeltaError

from ..exceptions import SinkWriteError
from ..records import VALID_OUTPUT, ClassifiedRecord

logger = logging.getLogger(__name__)


class DeltaSink:
    """Appends valid records to a Delta table partitioned by ingestion date."""

    _COLUMN_TYPES: dict[str, pa.DataType] = {
        "_raw_value": pa.string(),
        "_source": pa.string(),
        "_partition": pa.int32(),
        "_offset": pa.int64(),
        "_ingested_at": pa.timestamp("us", tz="UTC"),
        "_ingestion_date": pa.string(),
    }
    SCHEMA = pa.schema(_COLUMN_TYPES)

    def __init__(
        self,
        table_path: str,
        storage_options: Optional[dict[str, str]] = None,
        name: str = VALID_OUTPUT,
    ):
        self.name = name
        self.table_path = table_path
        self.storage_options = storage_options

    def initialize_table(self) -> None:
        """Create the empty Delta table if it doesn't exist yet."""
        try:
            DeltaTable.create(
                table_uri=self.table_path,
                schema=self.SCHEMA,
                mode="ignore",
                partition_by=["_ingestion_date"],
                storage_options=self.storage_options,
            )
        except (DeltaError, OSError) as e:
            logger.warning(f"Could not initialize table {self.table_path}: {e}")

    def to_row(self, record: ClassifiedRecord) -> dict[str, Any]:
        raw = record.raw
        if record.parsed is not None:
            raw_value = json.dumps(record.parsed.data, separators=(",", ":"))
        else:
            raw_value = raw.payload_text()
        return {
            "_raw_value": raw_value,
            "_source": raw.source,
            "_partition": raw.partition,
            "_offset": raw.offset,
            "_ingested_at": raw.ingested_at,
            "_ingestion_date": raw.ingested_at.strftime("%Y-%m-%d"),
        }

    def write(self, records: list[ClassifiedRecord]) -> None:
        if not records:
            return

        table = pa.Table.from_pylist([self.to_row(r) for r in records], schema=self.SCHEMA)
        try:
            write_deltalake(
                self.table_path,
                table,
                mode="append",
                partition_by=["_ingestion_date"],
                storage_options=self.storage_options,
            )
        except (DeltaError, OSError) as e:
            raise SinkWriteError(
                f"Failed to write {len(records)} records to {self.table_path}: {e}",
                details={"output": self.name},
            ) from e

    def close(self) -> None:
        pass
