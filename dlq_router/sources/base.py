"""Record source contract."""

from collections.abc import Iterator
from typing import Optional, Protocol, runtime_checkable

from ..records import RawRecord


@runtime_checkable
class RecordSource(Protocol):
    """Pull-based, offset-aware supplier of raw records.

    ``read`` yields records in offset order, starting strictly after
    ``after`` (or at the beginning when ``after`` is None). It may yield
    None when no record is available yet, which gives the consumer a chance
    to flush on time. The iterator ends when the source is exhausted or
    stopped. A recoverable failure raises SourceError and the caller may
    read again; SourceFatalError means the source cannot continue.
    """

    def read(self, after: Optional[int] = None) -> Iterator[Optional[RawRecord]]: ...

    def stop(self) -> None:
        """Ask the current or next ``read`` to end at the next opportunity."""
        ...

    def close(self) -> None: ...
