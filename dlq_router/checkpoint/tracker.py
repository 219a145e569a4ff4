"""Per-output checkpoint tracking over a durable key-value store."""

import logging
import threading
from collections.abc import Iterable
from typing import Optional, Protocol, runtime_checkable

from ..exceptions import CheckpointOrderError

logger = logging.getLogger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Durable key-value store holding one offset per output name."""

    def get(self, key: str) -> Optional[int]:
        """Return the stored offset, or None if the key was never written."""
        ...

    def put(self, key: str, value: int) -> None:
        """Durably store an offset. Must not return before it is persisted."""
        ...


class MemoryCheckpointStore:
    """Process-local store, for tests and dry runs."""

    def __init__(self, initial: Optional[dict[str, int]] = None) -> None:
        self._data: dict[str, int] = dict(initial or {})

    def get(self, key: str) -> Optional[int]:
        return self._data.get(key)

    def put(self, key: str, value: int) -> None:
        self._data[key] = value

    def snapshot(self) -> dict[str, int]:
        return dict(self._data)


class CheckpointTracker:
    """Records the last durably processed offset for each output.

    Commits for one output are serialized and must never move backwards.
    Store failures surface as CheckpointStoreError from the store itself.
    """

    def __init__(self, store: CheckpointStore) -> None:
        self.store = store
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._cache: dict[str, int] = {}

    def _lock_for(self, output_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(output_name)
            if lock is None:
                lock = threading.Lock()
                self._locks[output_name] = lock
            return lock

    def commit(self, output_name: str, offset: int) -> None:
        """Persist ``offset`` as the last processed position of an output."""
        with self._lock_for(output_name):
            current = self._last_committed_locked(output_name)
            if current is not None:
                if offset < current:
                    raise CheckpointOrderError(
                        f"Refusing to move checkpoint for {output_name} back "
                        f"from {current} to {offset}",
                        details={"output": output_name, "current": current, "offset": offset},
                    )
                if offset == current:
                    return

            self.store.put(output_name, offset)
            self._cache[output_name] = offset
            logger.debug(f"Committed {output_name} at offset {offset}")

    def last_committed(self, output_name: str) -> Optional[int]:
        """Last durable offset for an output, or None if never committed."""
        with self._lock_for(output_name):
            return self._last_committed_locked(output_name)

    def _last_committed_locked(self, output_name: str) -> Optional[int]:
        if output_name in self._cache:
            return self._cache[output_name]
        offset = self.store.get(output_name)
        if offset is not None:
            self._cache[output_name] = offset
        return offset

    def resume_offset(self, output_names: Iterable[str]) -> Optional[int]:
        """Offset to resume strictly after: the least-advanced output.

        None when any output has never committed, meaning the stream must
        be read from the beginning.
        """
        offsets = [self.last_committed(name) for name in output_names]
        if not offsets or any(o is None for o in offsets):
            return None
        return min(o for o in offsets if o is not None)
