from __future__ import annotations

import re
import unittest
from typing import Any
from unittest import mock

from salon_notifications.adapters.topology import (
    QueueTopologyManager,
    binding_to_regex,
    subscription_pattern,
)
from salon_notifications.types import EventKind


class TopicExists(Exception):
    pass


def new_topic(**kwargs: Any) -> dict[str, Any]:
    return kwargs


def make_manager(admin: mock.Mock, **overrides: Any) -> QueueTopologyManager:
    options: dict[str, Any] = {
        "work_topic": "appointment_notifications",
        "dlq_topic": "appointment_notifications.dlq",
        "work_partitions": 3,
        "new_topic_factory": new_topic,
        "already_exists_error": TopicExists,
        "sleep": lambda _seconds: None,
    }
    options.update(overrides)
    return QueueTopologyManager(admin, **options)


def created_topic_names(admin: mock.Mock) -> list[str]:
    return [
        call.kwargs["new_topics"][0]["name"] for call in admin.create_topics.call_args_list
    ]


class BindingPatternTests(unittest.TestCase):
    def matches(self, pattern: str, topic: str) -> bool:
        return re.match(binding_to_regex(pattern), topic) is not None

    def test_hash_matches_zero_or_more_words(self) -> None:
        self.assertTrue(self.matches("appointment.#", "appointment.created"))
        self.assertTrue(self.matches("appointment.#", "appointment.no_show"))
        self.assertTrue(self.matches("appointment.#", "appointment"))
        self.assertTrue(self.matches("appointment.#", "appointment.a.b"))
        self.assertFalse(self.matches("appointment.#", "appointments.created"))
        self.assertFalse(self.matches("appointment.#", "payment.created"))

    def test_star_matches_exactly_one_word(self) -> None:
        self.assertTrue(self.matches("appointment.*", "appointment.created"))
        self.assertFalse(self.matches("appointment.*", "appointment"))
        self.assertFalse(self.matches("appointment.*", "appointment.a.b"))

    def test_leading_and_middle_hash(self) -> None:
        self.assertTrue(self.matches("#.created", "created"))
        self.assertTrue(self.matches("#.created", "appointment.created"))
        self.assertTrue(self.matches("a.#.z", "a.z"))
        self.assertTrue(self.matches("a.#.z", "a.b.c.z"))
        self.assertFalse(self.matches("a.#.z", "a.b"))

    def test_lone_hash_matches_everything(self) -> None:
        self.assertTrue(self.matches("#", "anything.at.all"))

    def test_subscription_includes_work_topic(self) -> None:
        pattern = re.compile(subscription_pattern("appointment.#", "appointment_notifications"))
        self.assertTrue(pattern.match("appointment.created"))
        self.assertTrue(pattern.match("appointment_notifications"))
        self.assertFalse(pattern.match("appointment_notifications.dlq"))


class QueueTopologyManagerTests(unittest.TestCase):
    def test_declares_everything_on_empty_cluster(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = []

        topology = make_manager(admin).ensure_topology()

        names = created_topic_names(admin)
        self.assertIn("appointment_notifications", names)
        self.assertIn("appointment_notifications.dlq", names)
        for kind in EventKind:
            self.assertIn(kind.routing_key, names)
        self.assertEqual(topology["dead_letter_routing_key"], "dead-letter")
        self.assertEqual(
            sorted(topology["bound_topics"]), sorted(kind.routing_key for kind in EventKind)
        )
        admin.delete_topics.assert_not_called()

    def test_is_idempotent_when_topics_exist(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = [
            "appointment_notifications",
            "appointment_notifications.dlq",
            *(kind.routing_key for kind in EventKind),
        ]
        admin.describe_topics.return_value = [
            {"topic": "appointment_notifications", "partitions": [{}, {}, {}]}
        ]

        make_manager(admin).ensure_topology()

        admin.create_topics.assert_not_called()
        admin.delete_topics.assert_not_called()

    def test_tolerates_concurrent_creation(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = []
        admin.create_topics.side_effect = TopicExists("exists")

        topology = make_manager(admin).ensure_topology()

        self.assertEqual(topology["work_topic"], "appointment_notifications")

    def test_recreates_work_topic_with_conflicting_partitions(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = [
            "appointment_notifications",
            "appointment_notifications.dlq",
        ]
        admin.describe_topics.return_value = [
            {"topic": "appointment_notifications", "partitions": [{}]}
        ]
        # The first create after delete races the asynchronous deletion.
        admin.create_topics.side_effect = [TopicExists("pending delete"), None] + [None] * 10

        make_manager(admin, upstream_topics=[]).ensure_topology()

        admin.delete_topics.assert_called_once_with(["appointment_notifications"])
        self.assertEqual(
            created_topic_names(admin), ["appointment_notifications", "appointment_notifications"]
        )
        self.assertEqual(admin.create_topics.call_args.kwargs["new_topics"][0]["num_partitions"], 3)

    def test_never_deletes_dead_letter_topic(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = ["appointment_notifications.dlq"]

        make_manager(admin, upstream_topics=[]).ensure_topology()

        admin.delete_topics.assert_not_called()
        self.assertEqual(created_topic_names(admin), ["appointment_notifications"])

    def test_binding_pattern_limits_upstream_topics(self) -> None:
        admin = mock.Mock()
        admin.list_topics.return_value = []

        topology = make_manager(
            admin, binding_pattern="appointment.cancelled"
        ).ensure_topology()

        self.assertEqual(topology["bound_topics"], ["appointment.cancelled"])


if __name__ == "__main__":
    unittest.main()
