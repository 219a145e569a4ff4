"""In-memory sink."""

from ..records import ClassifiedRecord


class MemorySink:
    """Keeps written records in a list. Every write is immediately durable."""

    def __init__(self, name: str):
        self.name = name
        self.records: list[ClassifiedRecord] = []
        self.batches: list[list[ClassifiedRecord]] = []
        self.closed = False

    def write(self, records: list[ClassifiedRecord]) -> None:
        if not records:
            return
        self.batches.append(list(records))
        self.records.extend(records)

    @property
    def offsets(self) -> list[int]:
        return [r.offset for r in self.records]

    def close(self) -> None:
        self.closed = True
