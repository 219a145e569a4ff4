"""Durable outputs for routed records."""

from .base import RecordSink
from .memory import MemorySink

__all__ = ["RecordSink", "MemorySink"]
