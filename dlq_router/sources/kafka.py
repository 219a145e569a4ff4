"""Kafka record source reading a single topic partition."""

import logging
import time
from collections.abc import Iterator
from typing import Optional

from confluent_kafka import OFFSET_BEGINNING, Consumer, KafkaError, Message, TopicPartition

from ..exceptions import SourceFatalError
from ..records import RawRecord, utc_now

logger = logging.getLogger(__name__)


class KafkaSource:
    """Reads one partition of one topic from an explicit offset.

    Progress lives in the checkpoint store, so the consumer is assigned its
    partition directly and never commits offsets to Kafka.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        partition: int = 0,
        group_id: str = "dlq-router",
        poll_timeout: float = 1.0,
        stop_on_idle: bool = False,
        security_protocol: str = "PLAINTEXT",
        sasl_mechanism: str = "PLAIN",
        sasl_username: str = "",
        sasl_password: str = "",
        error_backoff: float = 1.0,
        unknown_topic_backoff: float = 5.0,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.partition = partition
        self.group_id = group_id
        self.poll_timeout = poll_timeout
        self.stop_on_idle = stop_on_idle
        self.security_protocol = security_protocol
        self.sasl_mechanism = sasl_mechanism
        self.sasl_username = sasl_username
        self.sasl_password = sasl_password
        self.error_backoff = error_backoff
        self.unknown_topic_backoff = unknown_topic_backoff
        self._consumer: Optional[Consumer] = None
        self._running = True

    def _consumer_config(self) -> dict[str, str | int | float | bool | None]:
        config: dict[str, str | int | float | bool | None] = {
            "bootstrap.servers": self.bootstrap_servers,
            "group.id": self.group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": False,
            "enable.partition.eof": True,
        }
        if self.security_protocol != "PLAINTEXT":
            config["security.protocol"] = self.security_protocol
            config["sasl.mechanism"] = self.sasl_mechanism
            config["sasl.username"] = self.sasl_username
            config["sasl.password"] = self.sasl_password
        return config

    def _ensure_consumer(self, start_offset: int) -> Consumer:
        if self._consumer is None:
            self._consumer = Consumer(self._consumer_config())
        self._consumer.assign([TopicPartition(self.topic, self.partition, start_offset)])
        return self._consumer

    def to_raw_record(self, msg: Message) -> RawRecord:
        return RawRecord(
            payload=msg.value(),
            offset=msg.offset(),
            ingested_at=utc_now(),
            source=msg.topic() or self.topic,
            partition=msg.partition(),
            key=msg.key(),
        )

    def read(self, after: Optional[int] = None) -> Iterator[Optional[RawRecord]]:
        start_offset = OFFSET_BEGINNING if after is None else after + 1
        consumer = self._ensure_consumer(start_offset)
        logger.info(
            f"Reading {self.topic}[{self.partition}] from "
            f"{'beginning' if after is None else f'offset {after + 1}'}"
        )

        try:
            while self._running:
                msg = consumer.poll(timeout=self.poll_timeout)

                if msg is None:
                    if self.stop_on_idle:
                        return
                    yield None
                    continue

                error = msg.error()
                if error:
                    error_code = error.code()
                    if error_code == KafkaError._PARTITION_EOF:  # type: ignore[attr-defined]
                        if self.stop_on_idle:
                            return
                        yield None
                        continue
                    if error.fatal():
                        raise SourceFatalError(
                            f"Fatal Kafka error: {error}", details={"topic": self.topic}
                        )
                    if error_code == KafkaError.UNKNOWN_TOPIC_OR_PART:  # type: ignore[attr-defined]
                        logger.warning(f"Topic {self.topic} not available yet, waiting...")
                        time.sleep(self.unknown_topic_backoff)
                    else:
                        logger.error(f"Kafka error: {error}")
                        time.sleep(self.error_backoff)
                    yield None
                    continue

                yield self.to_raw_record(msg)
        finally:
            # A finished read leaves the source ready to be read again.
            self._running = True

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        if self._consumer:
            self._consumer.close()
            self._consumer = None
