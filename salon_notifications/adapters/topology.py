"""Broker topology declaration for the notification worker.

Mental model refresher:
- `ensure_topology()` is idempotent and runs on every process start.
- Destinations:
  - upstream event topics, one per appointment routing key
    (`appointment.created`, ...), which producers publish to
  - the work topic, where requeued deliveries wait for the next attempt
  - the dead-letter topic, which receives rejected messages keyed by the
    fixed dead-letter routing key
- The binding pattern uses topic-exchange wildcards (`*` one word, `#` zero
  or more words) and becomes the consumer's subscription regex, together with
  the work topic itself.
- Operator note: when the work topic exists with different arguments it is
  DELETED and recreated. Anything waiting in it for a retry is dropped. The
  topic only holds transient replayable work, so availability wins over
  durability here. The dead-letter topic is never deleted.
"""

from __future__ import annotations

import re
import time
from typing import Any, Callable, Iterable

from ..logging import get_logger
from ..types import EventKind

logger = get_logger(__name__)

DEAD_LETTER_ROUTING_KEY = "dead-letter"


def binding_to_regex(pattern: str) -> str:
    """Translate a topic-exchange binding pattern into an anchored regex."""
    words = pattern.split(".")
    if words == ["#"]:
        return r"^.*$"

    parts: list[str] = []
    leading_hash = False
    for index, word in enumerate(words):
        if word == "#":
            if index == 0:
                parts.append(r"(?:[^.]+\.)*")
                leading_hash = True
            else:
                parts.append(r"(?:\.[^.]+)*")
            continue
        piece = "[^.]+" if word == "*" else re.escape(word)
        needs_separator = index > 0 and not (leading_hash and index == 1)
        parts.append((r"\." if needs_separator else "") + piece)
    return "^" + "".join(parts) + "$"


def subscription_pattern(binding_pattern: str, work_topic: str) -> str:
    binding = binding_to_regex(binding_pattern)
    return f"(?:{binding})|(?:^{re.escape(work_topic)}$)"


class QueueTopologyManager:
    def __init__(
        self,
        admin: Any,
        *,
        work_topic: str,
        dlq_topic: str,
        binding_pattern: str = "appointment.#",
        work_partitions: int = 1,
        replication_factor: int = 1,
        upstream_topics: Iterable[str] | None = None,
        new_topic_factory: Callable[..., Any] | None = None,
        already_exists_error: type[BaseException] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        recreate_attempts: int = 10,
    ) -> None:
        self.admin = admin
        self.work_topic = work_topic
        self.dlq_topic = dlq_topic
        self.binding_pattern = binding_pattern
        self.work_partitions = work_partitions
        self.replication_factor = replication_factor
        self.upstream_topics = (
            list(upstream_topics)
            if upstream_topics is not None
            else [kind.routing_key for kind in EventKind]
        )
        if new_topic_factory is None or already_exists_error is None:
            kafka_new_topic, kafka_exists_error = _import_kafka_admin_types()
            new_topic_factory = new_topic_factory or kafka_new_topic
            already_exists_error = already_exists_error or kafka_exists_error
        self.new_topic_factory = new_topic_factory
        self.already_exists_error = already_exists_error
        self.sleep = sleep
        self.recreate_attempts = recreate_attempts

    def ensure_topology(self) -> dict[str, Any]:
        existing = set(self.admin.list_topics())

        if self.work_topic in existing:
            partitions = self._partition_count(self.work_topic)
            if partitions != self.work_partitions:
                logger.warning(
                    "Work topic exists with different arguments; deleting and recreating. "
                    "Deliveries waiting for retry in it are dropped",
                    topic=self.work_topic,
                    existing_partitions=partitions,
                    wanted_partitions=self.work_partitions,
                )
                self.admin.delete_topics([self.work_topic])
                self._create_after_delete(self.work_topic, self.work_partitions)
        else:
            self._create(self.work_topic, self.work_partitions)

        if self.dlq_topic not in existing:
            self._create(self.dlq_topic, 1)

        regex = re.compile(binding_to_regex(self.binding_pattern))
        bound = [topic for topic in self.upstream_topics if regex.match(topic)]
        for topic in bound:
            if topic not in existing:
                self._create(topic, self.work_partitions)

        topology = {
            "work_topic": self.work_topic,
            "dlq_topic": self.dlq_topic,
            "dead_letter_routing_key": DEAD_LETTER_ROUTING_KEY,
            "bound_topics": bound,
            "subscription_pattern": subscription_pattern(self.binding_pattern, self.work_topic),
        }
        logger.info("Topology declared", **topology)
        return topology

    def _partition_count(self, topic: str) -> int:
        described = self.admin.describe_topics([topic])
        for item in described:
            if item.get("topic") == topic:
                return len(item.get("partitions") or [])
        return 0

    def _create(self, topic: str, partitions: int) -> bool:
        new_topic = self.new_topic_factory(
            name=topic,
            num_partitions=partitions,
            replication_factor=self.replication_factor,
        )
        try:
            self.admin.create_topics(new_topics=[new_topic], validate_only=False)
        except self.already_exists_error:
            logger.debug("Topic already exists", topic=topic)
            return False
        logger.info("Topic created", topic=topic, partitions=partitions)
        return True

    def _create_after_delete(self, topic: str, partitions: int) -> None:
        # Topic deletion completes asynchronously on the broker.
        for attempt in range(1, self.recreate_attempts + 1):
            if self._create(topic, partitions):
                return
            self.sleep(min(0.5 * attempt, 5.0))
        raise RuntimeError(f"Topic {topic} was not recreated after deletion")


def _import_kafka_admin_types() -> tuple[Any, Any]:
    try:
        from kafka.admin import NewTopic
        from kafka.errors import TopicAlreadyExistsError
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return NewTopic, TopicAlreadyExistsError
