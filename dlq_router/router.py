"""Record router: splits a record stream into valid and dead-letter outputs."""

import logging
import time
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .checkpoint import CheckpointTracker
from .exceptions import (
    OutputWriteError,
    SchemaError,
    SourceError,
    SourceFatalError,
    TransientError,
)
from .logging_setup import log_context
from .records import (
    DEAD_LETTER_OUTPUT,
    OUTPUT_NAMES,
    VALID_OUTPUT,
    ClassifiedRecord,
    RawRecord,
)
from .retry import RetryConfig, with_retry
from .schema_validator import SchemaValidator
from .sinks import RecordSink
from .sources import RecordSource

logger = logging.getLogger(__name__)


@dataclass
class RouterStats:
    records_read: int = 0
    valid_written: int = 0
    dead_letter_written: int = 0
    replays_skipped: int = 0
    batches_flushed: int = 0
    last_offset: Optional[int] = None

    def to_dict(self) -> dict[str, Optional[int]]:
        return {
            "records_read": self.records_read,
            "valid_written": self.valid_written,
            "dead_letter_written": self.dead_letter_written,
            "replays_skipped": self.replays_skipped,
            "batches_flushed": self.batches_flushed,
            "last_offset": self.last_offset,
        }


class RecordRouter:
    """Classifies records and writes each class to its own durable sink.

    Records are buffered and flushed in batches. A flush writes each
    output's share of the batch and only then commits the batch's highest
    offset for that output, so a crash between write and commit replays
    records instead of losing them. On restart reading resumes after the
    least-advanced output's checkpoint; replayed records are not written
    again to an output whose checkpoint already covers them.
    """

    def __init__(
        self,
        source: RecordSource,
        valid_sink: RecordSink,
        dead_letter_sink: RecordSink,
        tracker: CheckpointTracker,
        validator: SchemaValidator,
        *,
        batch_size: int = 500,
        batch_interval_seconds: float = 10.0,
        workers: int = 1,
        retry_config: Optional[RetryConfig] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if workers < 1:
            raise ValueError("workers must be at least 1")

        self.source = source
        self.tracker = tracker
        self.validator = validator
        self.batch_size = batch_size
        self.batch_interval_seconds = batch_interval_seconds
        self.workers = workers
        self.retry_config = retry_config or RetryConfig()

        # Flush order: valid first, then dead-letter.
        self._sinks: dict[str, RecordSink] = {
            VALID_OUTPUT: valid_sink,
            DEAD_LETTER_OUTPUT: dead_letter_sink,
        }
        self._committed: dict[str, Optional[int]] = {}
        self._buffer: list[RawRecord] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._running = False
        self._stop_requested = False
        self._last_flush = time.monotonic()

        self.stats = RouterStats()

    @property
    def running(self) -> bool:
        return self._running

    def classify(self, raw: RawRecord) -> ClassifiedRecord:
        """Classify one record. Never raises for a malformed record."""
        try:
            parsed = self.validator.validate(raw)
        except SchemaError as e:
            return ClassifiedRecord.dead_letter(raw, e.message, e.error_type)
        return ClassifiedRecord.valid(parsed)

    def classify_batch(self, raws: list[RawRecord]) -> list[ClassifiedRecord]:
        """Classify a batch, preserving input order."""
        if self.workers == 1 or len(raws) < 2:
            return [self.classify(raw) for raw in raws]

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="classify"
            )
        return list(self._executor.map(self.classify, raws))

    def route(self, records: Iterable[RawRecord]) -> Iterator[ClassifiedRecord]:
        """Lazily classify a stream of records without writing anything."""
        for raw in records:
            yield self.classify(raw)

    def resume_offset(self) -> Optional[int]:
        """Offset to resume strictly after, or None to start from the beginning."""
        return self.tracker.resume_offset(OUTPUT_NAMES)

    def run(self) -> RouterStats:
        """Route records until the source ends or stop() is called.

        A stop requested before run() applies to that run: nothing is read.

        Raises:
            OutputWriteError: A sink kept failing after all retries. The
                failed output is left uncommitted.
            CheckpointStoreError: The checkpoint store is unavailable.
            SourceFatalError: The source failed fatally or kept failing
                after all retries. Records read before the failure are
                flushed and committed first.
        """
        self._committed = {name: self.tracker.last_committed(name) for name in self._sinks}
        after = self.resume_offset()
        self._running = True

        logger.info(
            f"Router started, resuming after offset {after} "
            f"(committed: {self._committed}), batch_size={self.batch_size}, "
            f"workers={self.workers}"
        )

        self._last_flush = time.monotonic()
        try:
            try:
                self._consume(after)
            except SourceFatalError:
                logger.error("Source failed, flushing records read so far")
                self.flush()
                raise
            self.flush()
        finally:
            self._running = False
            self._stop_requested = False
            self.source.close()
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            logger.info(f"Router stopped. {self.stats.to_dict()}")

        return self.stats

    def _consume(self, after: Optional[int]) -> None:
        """Buffer records from the source, re-reading after transient failures."""
        failures = 0
        while True:
            try:
                for raw in self.source.read(after=after):
                    if self._stop_requested:
                        # Not buffered, so it stays uncommitted and is read again next run.
                        break
                    if raw is not None:
                        self._buffer.append(raw)
                        self.stats.records_read += 1
                        after = raw.offset
                        failures = 0

                    now = time.monotonic()
                    if (
                        len(self._buffer) >= self.batch_size
                        or now - self._last_flush >= self.batch_interval_seconds
                    ):
                        self.flush()
                        self._last_flush = now

                    if self._stop_requested:
                        logger.info("Stop requested, draining buffered records")
                        break
                return
            except SourceError as e:
                failures += 1
                if failures >= self.retry_config.max_attempts:
                    raise SourceFatalError(
                        f"Source failed after {failures} attempts: {e.message}",
                        details={**e.details, "after_offset": after},
                    ) from e
                if self._stop_requested:
                    return
                delay = self.retry_config.delay_for(failures - 1)
                logger.warning(
                    f"Source read failed (attempt {failures}/{self.retry_config.max_attempts}), "
                    f"reading again after offset {after} in {delay:.2f}s: {e.message}"
                )
                time.sleep(delay)

    def stop(self) -> None:
        """Request a clean drain: finish the current record, flush, commit, halt."""
        logger.info("Stop requested...")
        self._stop_requested = True
        self.source.stop()

    def flush(self) -> None:
        """Write buffered records to their outputs, then commit each output."""
        if not self._buffer:
            return

        batch = self._buffer
        self._buffer = []
        high_water = batch[-1].offset

        by_output: dict[str, list[ClassifiedRecord]] = {name: [] for name in self._sinks}
        for record in self.classify_batch(batch):
            committed = self._committed.get(record.output_name)
            if committed is not None and record.offset <= committed:
                self.stats.replays_skipped += 1
                continue
            by_output[record.output_name].append(record)

        for name, sink in self._sinks.items():
            committed = self._committed.get(name)
            if committed is not None and high_water <= committed:
                continue

            records = by_output[name]
            with log_context(output=name):
                self._write(name, sink, records)
                self.tracker.commit(name, high_water)
            self._committed[name] = high_water

            if name == VALID_OUTPUT:
                self.stats.valid_written += len(records)
            else:
                self.stats.dead_letter_written += len(records)

        self.stats.batches_flushed += 1
        self.stats.last_offset = high_water
        logger.debug(
            f"Flushed batch up to offset {high_water}: "
            f"valid={len(by_output[VALID_OUTPUT])}, "
            f"dead_letter={len(by_output[DEAD_LETTER_OUTPUT])}"
        )

    def _write(self, name: str, sink: RecordSink, records: list[ClassifiedRecord]) -> None:
        if not records:
            return
        try:
            with_retry(
                lambda: sink.write(records),
                config=self.retry_config,
                operation_name=f"Write of {len(records)} records to {name}",
            )
        except TransientError as e:
            raise OutputWriteError(
                name,
                f"Giving up on output {name} after {self.retry_config.max_attempts} attempts: {e}",
                details={"first_offset": records[0].offset, "last_offset": records[-1].offset},
            ) from e

    def close(self) -> None:
        """Close both sinks."""
        for name, sink in self._sinks.items():
            try:
                sink.close()
            except Exception as e:
                logger.warning(f"Error closing {name} sink: {e}")
