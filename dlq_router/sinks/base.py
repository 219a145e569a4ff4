"""Record sink contract."""

from typing import Protocol, runtime_checkable

from ..records import ClassifiedRecord


@runtime_checkable
class RecordSink(Protocol):
    """Durable destination for one output of the router."""

    name: str

    def write(self, records: list[ClassifiedRecord]) -> None:
        """Write a batch. The batch must be durable when this returns.

        Transient failures are raised as SinkWriteError so the caller can
        retry the whole batch.
        """
        ...

    def close(self) -> None: ...
