"""Kafka transport adapters for publishing and consuming notification events.

Mental model refresher:
- This module is transport glue to Kafka itself.
- It maps Kafka records into the broker-independent `handle_message` flow and
  turns its three settle callbacks into broker operations:
  - ack => commit offset + 1
  - requeue => republish the original bytes to the work topic with
    `x-retry-count` bumped, then commit
  - dead-letter => republish the original bytes to the dead-letter topic with
    `x-death-*` headers, then commit
- If a republish fails the offset is NOT committed; the consumer seeks back so
  the same record is polled again. Duplicates are possible, loss is not.
- Business/channel logic still lives in domain/application layers.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
import signal
import threading
from typing import Any, Callable, Mapping

from ..config import Settings
from ..logging import configure_logging, get_logger
from ..types import Headers, ProcessingResult
from .bootstrap import build_pipeline, describe_pipeline
from .consumer_handler import Handler, handle_message
from .health import HealthServer, HealthState
from .payload import RETRY_HEADER, TENANT_HEADER, parse_event_kind, retry_count_from_headers
from .topology import DEAD_LETTER_ROUTING_KEY, QueueTopologyManager

logger = get_logger(__name__)

DEATH_REASON_HEADER = "x-death-reason"
DEATH_QUEUE_HEADER = "x-death-queue"
DEATH_TIMESTAMP_HEADER = "x-death-timestamp"
DEATH_ROUTING_KEY_HEADER = "x-death-routing-key"
DEATH_RETRY_COUNT_HEADER = "x-death-retry-count"


class BrokerChannel:
    """Single owner of the consumer and producer.

    Poll, commit, seek and publish all take the same lock, so the consume loop
    and shutdown never interleave operations on the Kafka clients.
    """

    def __init__(
        self,
        consumer: Any,
        producer: Any,
        *,
        topic_partition_type: Any,
        offset_and_metadata_type: Any,
        send_timeout_seconds: float = 10.0,
    ) -> None:
        self.consumer = consumer
        self.producer = producer
        self.topic_partition_type = topic_partition_type
        self.offset_and_metadata_type = offset_and_metadata_type
        self.send_timeout_seconds = send_timeout_seconds
        self._lock = threading.Lock()

    def poll(self, timeout_ms: int) -> list[Any]:
        with self._lock:
            batches = self.consumer.poll(timeout_ms=timeout_ms, max_records=1)
        messages: list[Any] = []
        for _topic_partition, records in (batches or {}).items():
            messages.extend(records)
        return messages

    def commit(self, message: Any) -> None:
        partition = self.topic_partition_type(message.topic, int(message.partition))
        offsets = {
            partition: _offset_and_metadata(self.offset_and_metadata_type, int(message.offset) + 1)
        }
        with self._lock:
            self.consumer.commit(offsets=offsets)

    def seek(self, message: Any) -> None:
        partition = self.topic_partition_type(message.topic, int(message.partition))
        with self._lock:
            self.consumer.seek(partition, int(message.offset))

    def publish(
        self,
        topic: str,
        *,
        value: bytes,
        key: bytes | None,
        headers: list[tuple[str, bytes]],
    ) -> Any:
        with self._lock:
            future = self.producer.send(topic, value=value, key=key, headers=headers)
            return future.get(timeout=self.send_timeout_seconds)

    def close(self, timeout_seconds: float | None = None) -> None:
        flush_timeout = self.send_timeout_seconds if timeout_seconds is None else timeout_seconds
        with self._lock:
            try:
                self.consumer.close()
            except Exception as exc:
                logger.warning("Consumer close failed", error=str(exc))
            try:
                self.producer.flush(timeout=flush_timeout)
            except Exception as exc:
                logger.warning("Producer flush failed", error=str(exc))
            try:
                self.producer.close()
            except Exception as exc:
                logger.warning("Producer close failed", error=str(exc))


class KafkaEventConsumer:
    def __init__(
        self,
        channel: BrokerChannel,
        *,
        work_topic: str,
        dlq_topic: str,
        max_attempts: int = 3,
        poll_timeout_ms: int = 1000,
        rewind_backoff_seconds: float = 1.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.channel = channel
        self.work_topic = work_topic
        self.dlq_topic = dlq_topic
        self.max_attempts = max_attempts
        self.poll_timeout_ms = poll_timeout_ms
        self.rewind_backoff_seconds = rewind_backoff_seconds
        self.clock = clock or (lambda: datetime.now(tz=UTC))
        self._stop = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def run(self, handler: Handler) -> None:
        """Poll and handle one record at a time until `stop()` is called."""
        logger.info(
            "Consumer loop started",
            work_topic=self.work_topic,
            dlq_topic=self.dlq_topic,
            max_attempts=self.max_attempts,
        )
        while not self._stop.is_set():
            for message in self.channel.poll(self.poll_timeout_ms):
                self.handle_record(message, handler)
                if self._stop.is_set():
                    break
        logger.info("Consumer loop stopped")

    def handle_record(self, message: Any, handler: Handler) -> dict[str, Any]:
        record = kafka_message_to_record(message)
        rewound = False

        def ack(_record: Mapping[str, Any]) -> None:
            try:
                self.channel.commit(message)
            except Exception as exc:
                # The record is redelivered; delivery-log suppression absorbs the repeat.
                logger.warning(
                    "Offset commit failed",
                    topic=message.topic,
                    partition=message.partition,
                    offset=message.offset,
                    error=str(exc),
                )

        def requeue(_record: Mapping[str, Any], next_attempt: int) -> None:
            nonlocal rewound
            headers = _build_requeue_headers(record["headers"], next_attempt)
            rewound = not self._republish(
                message, topic=self.work_topic, key=message.key, headers=headers
            )

        def dead_letter(_record: Mapping[str, Any], reason: str) -> None:
            nonlocal rewound
            headers = _build_dead_letter_headers(
                record["headers"],
                reason=reason,
                source_topic=message.topic,
                failed_at=self.clock(),
            )
            rewound = not self._republish(
                message,
                topic=self.dlq_topic,
                key=DEAD_LETTER_ROUTING_KEY.encode("utf-8"),
                headers=headers,
            )

        result = handle_message(
            record,
            handler=handler,
            ack=ack,
            requeue=requeue,
            dead_letter=dead_letter,
            max_attempts=self.max_attempts,
        )
        result["rewound"] = rewound
        if rewound:
            self._stop.wait(self.rewind_backoff_seconds)
        return result

    def _republish(
        self,
        message: Any,
        *,
        topic: str,
        key: bytes | None,
        headers: list[tuple[str, bytes]],
    ) -> bool:
        try:
            metadata = self.channel.publish(topic, value=message.value, key=key, headers=headers)
        except Exception as exc:
            logger.error(
                "Republish failed, offset not committed; rewinding",
                target_topic=topic,
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                error=str(exc),
            )
            self.channel.seek(message)
            return False

        logger.info(
            "Republished",
            target_topic=getattr(metadata, "topic", topic),
            target_partition=getattr(metadata, "partition", None),
            target_offset=getattr(metadata, "offset", None),
            topic=message.topic,
            partition=message.partition,
            offset=message.offset,
        )
        try:
            self.channel.commit(message)
        except Exception as exc:
            logger.warning("Offset commit failed after republish", error=str(exc))
        return True


def publish_appointment_event(
    payload: Mapping[str, Any],
    *,
    routing_key: str | None = None,
    tenant_id: str | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Publish one appointment lifecycle event to its upstream topic.

    The tenant travels in the `x-tenant-id` header; `tenant_id` overrides the
    body value, which lets a producer omit `tenantId` from the body entirely.
    """
    settings = settings or Settings.from_env()
    _KafkaConsumer, KafkaProducer, _TopicPartition, _OffsetAndMetadata = _import_kafka_python()

    topic_name = routing_key or parse_event_kind(payload.get("type", payload.get("kind"))).routing_key
    headers: list[tuple[str, bytes]] = []
    tenant_id = tenant_id or payload.get("tenantId")
    if tenant_id:
        headers.append((TENANT_HEADER, str(tenant_id).encode("utf-8")))
    appointment_id = payload.get("appointmentId")
    key = str(appointment_id).encode("utf-8") if appointment_id else None

    producer = KafkaProducer(
        bootstrap_servers=settings.require_bootstrap_servers(),
        value_serializer=_serialize_json_object,
        acks="all",
    )
    try:
        future = producer.send(topic_name, value=dict(payload), key=key, headers=headers)
        metadata = future.get(timeout=settings.send_timeout_seconds)
        producer.flush(timeout=settings.send_timeout_seconds)
    finally:
        producer.close()

    return {
        "topic": metadata.topic,
        "partition": metadata.partition,
        "offset": metadata.offset,
    }


def run_notification_worker_forever(settings: Settings | None = None) -> int:
    """Declare topology, serve health, and consume until a shutdown signal."""
    configure_logging()
    settings = settings or Settings.from_env()
    KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata = _import_kafka_python()
    KafkaAdminClient = _import_kafka_admin_client()
    bootstrap_servers = settings.require_bootstrap_servers()

    pipeline = build_pipeline(settings)
    health_state = HealthState()
    health_server = HealthServer(health_state, host=settings.health_host, port=settings.health_port)
    health_server.start()

    admin = KafkaAdminClient(
        bootstrap_servers=bootstrap_servers, client_id=f"{settings.group_id}-admin"
    )
    try:
        topology = QueueTopologyManager(
            admin,
            work_topic=settings.work_topic,
            dlq_topic=settings.dlq_topic,
            binding_pattern=settings.binding_pattern,
            work_partitions=settings.work_partitions,
            replication_factor=settings.replication_factor,
        ).ensure_topology()
    finally:
        admin.close()

    consumer = KafkaConsumer(
        bootstrap_servers=bootstrap_servers,
        group_id=settings.group_id,
        enable_auto_commit=False,
        auto_offset_reset=settings.auto_offset_reset,
        max_poll_records=1,
    )
    consumer.subscribe(pattern=topology["subscription_pattern"])
    producer = KafkaProducer(bootstrap_servers=bootstrap_servers, acks="all")

    channel = BrokerChannel(
        consumer,
        producer,
        topic_partition_type=TopicPartition,
        offset_and_metadata_type=OffsetAndMetadata,
        send_timeout_seconds=settings.send_timeout_seconds,
    )
    event_consumer = KafkaEventConsumer(
        channel,
        work_topic=settings.work_topic,
        dlq_topic=settings.dlq_topic,
        max_attempts=settings.max_attempts,
        poll_timeout_ms=int(settings.poll_timeout_seconds * 1000),
    )
    _install_signal_handlers(event_consumer.stop)

    logger.info(
        "Worker started",
        group_id=settings.group_id,
        subscription=topology["subscription_pattern"],
        **describe_pipeline(settings),
    )
    health_state.mark_ready(work_topic=settings.work_topic, group_id=settings.group_id)

    try:
        event_consumer.run(pipeline.router)
        return 0
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
        return 0
    except Exception:
        logger.exception("Worker stopped on unrecoverable error")
        return 1
    finally:
        health_state.mark_not_ready()
        channel.close(timeout_seconds=settings.shutdown_grace_seconds)
        pipeline.dispatcher.close()
        health_server.stop()
        logger.info("Worker shut down")


def kafka_message_to_record(message: Any) -> dict[str, Any]:
    return {
        "topic": message.topic,
        "partition": int(message.partition),
        "offset": int(message.offset),
        "key": message.key,
        "value": message.value,
        "headers": headers_to_dict(getattr(message, "headers", None)),
    }


def headers_to_dict(headers: Any) -> dict[str, bytes]:
    """Kafka delivers headers as `(name, bytes)` pairs; the last one wins."""
    result: dict[str, bytes] = {}
    for name, value in headers or []:
        if value is None:
            continue
        result[str(name)] = value if isinstance(value, bytes) else str(value).encode("utf-8")
    return result


def headers_to_list(headers: Mapping[str, bytes | str]) -> list[tuple[str, bytes]]:
    return [
        (name, value if isinstance(value, bytes) else str(value).encode("utf-8"))
        for name, value in headers.items()
    ]


def _build_requeue_headers(headers: Headers, next_attempt: int) -> list[tuple[str, bytes]]:
    updated = dict(headers)
    updated[RETRY_HEADER] = str(next_attempt).encode("utf-8")
    return headers_to_list(updated)


def _build_dead_letter_headers(
    headers: Headers,
    *,
    reason: str,
    source_topic: str,
    failed_at: datetime,
) -> list[tuple[str, bytes]]:
    updated = dict(headers)
    updated[DEATH_REASON_HEADER] = reason.encode("utf-8")
    updated[DEATH_QUEUE_HEADER] = source_topic.encode("utf-8")
    updated[DEATH_TIMESTAMP_HEADER] = failed_at.isoformat().encode("utf-8")
    updated[DEATH_ROUTING_KEY_HEADER] = DEAD_LETTER_ROUTING_KEY.encode("utf-8")
    updated[DEATH_RETRY_COUNT_HEADER] = str(retry_count_from_headers(headers)).encode("utf-8")
    return headers_to_list(updated)


def _install_signal_handlers(stop: Callable[[], None]) -> None:
    def _handle(signum: int, _frame: Any) -> None:
        logger.info("Shutdown signal received; finishing in-flight message", signal=signum)
        stop()

    if threading.current_thread() is not threading.main_thread():
        return
    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def _import_kafka_python() -> tuple[Any, Any, Any, Any]:
    try:
        from kafka import KafkaConsumer, KafkaProducer, TopicPartition
        from kafka.structs import OffsetAndMetadata
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata


def _import_kafka_admin_client() -> Any:
    try:
        from kafka.admin import KafkaAdminClient
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return KafkaAdminClient


def _serialize_json_object(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _offset_and_metadata(offset_and_metadata_type: Any, offset: int) -> Any:
    """Build kafka-python OffsetAndMetadata across version signatures."""
    try:
        return offset_and_metadata_type(offset, "", -1)
    except TypeError:
        try:
            return offset_and_metadata_type(offset, "", None)
        except TypeError:
            return offset_and_metadata_type(offset, "")


def describe_result(result: Mapping[str, Any]) -> str:
    processing: ProcessingResult | None = result.get("processing")
    meta = result.get("record_meta") or {}
    delivered = processing.get("all_delivered") if processing else None
    return (
        f"[RESULT] topic={meta.get('topic')} partition={meta.get('partition')} "
        f"offset={meta.get('offset')} status={result.get('status')} "
        f"retry_count={result.get('retry_count')} all_delivered={delivered} "
        f"error={result.get('error')}"
    )
