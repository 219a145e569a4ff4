"""In-memory record source."""

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Optional, Union

from ..records import RawRecord, utc_now


class IterableSource:
    """Serves a fixed list of payloads, assigning offsets from 0."""

    def __init__(
        self,
        payloads: Iterable[Union[bytes, str, None]],
        source_name: str = "memory",
        ingested_at: Optional[datetime] = None,
    ):
        self.source_name = source_name
        self._ingested_at = ingested_at
        self._payloads = [p.encode("utf-8") if isinstance(p, str) else p for p in payloads]
        self._running = True
        self.closed = False

    def __len__(self) -> int:
        return len(self._payloads)

    def read(self, after: Optional[int] = None) -> Iterator[Optional[RawRecord]]:
        start = 0 if after is None else after + 1
        try:
            for offset in range(start, len(self._payloads)):
                if not self._running:
                    return
                yield RawRecord(
                    payload=self._payloads[offset],
                    offset=offset,
                    ingested_at=self._ingested_at or utc_now(),
                    source=self.source_name,
                )
        finally:
            self._running = True

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        self.closed = True
