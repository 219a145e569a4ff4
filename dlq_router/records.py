"""Record types flowing through the router."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

VALID_OUTPUT = "valid"
DEAD_LETTER_OUTPUT = "dead_letter"
OUTPUT_NAMES = (VALID_OUTPUT, DEAD_LETTER_OUTPUT)


class Outcome(str, Enum):
    VALID = "valid"
    DEAD_LETTER = "dead-letter"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawRecord:
    """An opaque payload as received from the source."""

    payload: Optional[bytes]
    offset: int
    ingested_at: datetime = field(default_factory=utc_now)
    source: str = ""
    partition: int = 0
    key: Optional[bytes] = None

    def payload_text(self) -> str:
        """Payload decoded for storage, with undecodable bytes replaced."""
        if self.payload is None:
            return ""
        return self.payload.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ParsedRecord:
    offset: int
    data: dict[str, Any]
    raw: RawRecord


@dataclass(frozen=True)
class ClassifiedRecord:
    """A raw record tagged with its routing outcome.

    ``parsed`` is set only for valid records; ``reason`` and ``error_type``
    only for dead-letter records.
    """

    raw: RawRecord
    outcome: Outcome
    parsed: Optional[ParsedRecord] = None
    reason: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def valid(cls, parsed: ParsedRecord) -> "ClassifiedRecord":
        return cls(raw=parsed.raw, outcome=Outcome.VALID, parsed=parsed)

    @classmethod
    def dead_letter(cls, raw: RawRecord, reason: str, error_type: str) -> "ClassifiedRecord":
        return cls(raw=raw, outcome=Outcome.DEAD_LETTER, reason=reason, error_type=error_type)

    @property
    def offset(self) -> int:
        return self.raw.offset

    @property
    def is_valid(self) -> bool:
        return self.outcome is Outcome.VALID

    @property
    def output_name(self) -> str:
        return VALID_OUTPUT if self.is_valid else DEAD_LETTER_OUTPUT
