"""Record sources."""

from .base import RecordSource
from .memory import IterableSource

__all__ = ["RecordSource", "IterableSource"]
