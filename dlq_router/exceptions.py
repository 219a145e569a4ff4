"""Exception hierarchy for the record router."""

from typing import Any


class RouterError(Exception):
    """Base exception for all router errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(RouterError):
    """Errors that may succeed on retry."""

    pass


class SinkWriteError(TransientError):
    """A sink failed to durably write a batch."""

    pass


class SourceError(TransientError):
    """The record source returned an error instead of a record."""

    pass


class PermanentError(RouterError):
    """Errors that will not succeed on retry."""

    pass


class SchemaError(PermanentError):
    """A record does not conform to the expected shape.

    The message names the first violated constraint, e.g.
    ``missing field: event_time``.
    """

    def __init__(
        self,
        message: str,
        error_type: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.error_type = error_type
        self.field = field


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass


class CheckpointOrderError(PermanentError):
    """A commit tried to move an output's checkpoint backwards."""

    pass


class FatalError(RouterError):
    """Critical errors that halt the pipeline."""

    pass


class OutputWriteError(FatalError):
    """Writes to an output kept failing after all retries."""

    def __init__(self, output_name: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.output_name = output_name


class CheckpointStoreError(FatalError):
    """The checkpoint store could not be read or written."""

    pass


class SourceFatalError(FatalError):
    """The record source failed and cannot recover."""

    pass
