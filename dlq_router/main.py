"""Service entry point: wires settings into a running router."""

import logging
import signal
import sys
from typing import Any, Optional

from .checkpoint import CheckpointTracker, get_checkpoint_store
from .exceptions import ConfigurationError, FatalError
from .logging_setup import setup_logging
from .retry import RetryConfig
from .router import RecordRouter
from .schema_validator import RecordShape, SchemaValidator
from .settings import Settings, get_settings
from .sinks.dead_letter import DeadLetterSink
from .sinks.delta import DeltaSink
from .sources.kafka import KafkaSource

logger = logging.getLogger(__name__)


def build_validator(settings: Settings) -> SchemaValidator:
    router_settings = settings.router
    if router_settings.schema_path:
        try:
            return SchemaValidator.from_file(router_settings.schema_path)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e

    fields = router_settings.get_required_fields()
    if not fields:
        raise ConfigurationError("Either ROUTER_SCHEMA_PATH or ROUTER_REQUIRED_FIELDS must be set")
    return SchemaValidator(RecordShape.of(*fields))


def build_router(settings: Settings) -> RecordRouter:
    """Build a router with Kafka input, Delta outputs and the configured checkpoint store."""
    source = KafkaSource(
        bootstrap_servers=settings.source.bootstrap_servers,
        topic=settings.source.topic,
        partition=settings.source.partition,
        group_id=settings.source.group_id,
        poll_timeout=settings.source.poll_timeout_seconds,
        stop_on_idle=settings.source.stop_on_idle,
        security_protocol=settings.source.security_protocol,
        sasl_mechanism=settings.source.sasl_mechanism,
        sasl_username=settings.source.sasl_username,
        sasl_password=settings.source.sasl_password,
        error_backoff=settings.source.error_backoff_seconds,
        unknown_topic_backoff=settings.source.unknown_topic_backoff_seconds,
    )

    storage_options = settings.sink.get_storage_options()
    base_path = settings.sink.base_path.rstrip("/")
    valid_sink = DeltaSink(f"{base_path}/{settings.sink.valid_table}", storage_options)
    dead_letter_sink = DeadLetterSink(
        f"{base_path}/{settings.sink.dead_letter_table}", storage_options
    )
    valid_sink.initialize_table()
    dead_letter_sink.initialize_table()

    tracker = CheckpointTracker(get_checkpoint_store(settings.checkpoint))

    retry_config = RetryConfig(
        max_attempts=settings.router.max_retries,
        base_delay=settings.router.retry_base_delay_seconds,
        max_delay=settings.router.retry_max_delay_seconds,
    )

    return RecordRouter(
        source=source,
        valid_sink=valid_sink,
        dead_letter_sink=dead_letter_sink,
        tracker=tracker,
        validator=build_validator(settings),
        batch_size=settings.router.batch_size,
        batch_interval_seconds=settings.router.batch_interval_seconds,
        workers=settings.router.workers,
        retry_config=retry_config,
    )


class RouterService:
    """Runs a router until it drains or a shutdown signal arrives."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._router: Optional[RecordRouter] = None

    def _handle_shutdown(self, signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        if self._router is not None:
            self._router.stop()

    def run(self) -> int:
        self._router = build_router(self.settings)

        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

        try:
            stats = self._router.run()
        except FatalError as e:
            logger.error(f"Router halted: {e.message} {e.details}")
            return 1
        finally:
            self._router.close()

        logger.info(
            f"Routed {stats.records_read} records: "
            f"{stats.valid_written} valid, {stats.dead_letter_written} dead-letter"
        )
        return 0


def main() -> None:
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        environment=settings.environment,
    )
    try:
        exit_code = RouterService(settings).run()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        exit_code = 2
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
