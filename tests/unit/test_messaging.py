"""
Unit tests for the event bus and notification sinks
"""

import json
import unittest
from unittest.mock import MagicMock

import redis
from pymongo.errors import PyMongoError

from parkeazy.infrastructure.messaging import (
    DomainEvent, EventBus, EventHandler, EventType, MongoLogArchiver,
    Notification, NotificationInbox, RedisNotificationPublisher
)


def notification_event(title="Reservation confirmed"):
    notification = Notification(action_type="RESERVATION_CREATED", recipient_role="user",
                                title=title, body="Reserved GEC-01")
    return DomainEvent(event_type=EventType.NOTIFICATION_RAISED, data={'notification': notification})


class FailingHandler(EventHandler):

    def handle(self, event):
        raise RuntimeError("handler broke")


class ListHandler(EventHandler):

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)


# ============================================================================
# EVENT BUS
# ============================================================================

class TestEventBus(unittest.TestCase):

    def setUp(self):
        self.bus = EventBus()

    def test_failing_handler_does_not_stop_others(self):
        received = ListHandler()
        self.bus.subscribe(EventType.NOTIFICATION_RAISED, FailingHandler())
        self.bus.subscribe(EventType.NOTIFICATION_RAISED, received)
        with self.assertLogs('EventBus', level='ERROR'):
            self.bus.publish(notification_event())
        self.assertEqual(len(received.events), 1)

    def test_events_go_to_matching_type_only(self):
        received = ListHandler()
        self.bus.subscribe(EventType.LOG_RECORDED, received)
        self.bus.publish(notification_event())
        self.assertEqual(received.events, [])

    def test_subscribe_is_idempotent_and_reversible(self):
        received = ListHandler()
        self.bus.subscribe(EventType.LOG_RECORDED, received)
        self.bus.subscribe(EventType.LOG_RECORDED, received)
        self.bus.publish(DomainEvent(event_type=EventType.LOG_RECORDED, data={'log': {}}))
        self.bus.unsubscribe(EventType.LOG_RECORDED, received)
        self.bus.publish(DomainEvent(event_type=EventType.LOG_RECORDED, data={'log': {}}))
        self.assertEqual(len(received.events), 1)


# ============================================================================
# NOTIFICATION INBOX
# ============================================================================

class TestNotificationInbox(unittest.TestCase):

    def test_keeps_most_recent(self):
        inbox = NotificationInbox(capacity=2)
        for title in ("one", "two", "three"):
            inbox.handle(notification_event(title))
        self.assertEqual([n.title for n in inbox.pending()], ["two", "three"])

    def test_drain_empties(self):
        inbox = NotificationInbox()
        inbox.handle(notification_event())
        self.assertEqual(len(inbox.drain()), 1)
        self.assertEqual(inbox.drain(), [])

    def test_ignores_events_without_notification(self):
        inbox = NotificationInbox()
        self.assertFalse(inbox.can_handle(DomainEvent(event_type=EventType.LOG_RECORDED, data={'log': {}})))


# ============================================================================
# EXTERNAL SINKS
# ============================================================================

class TestRedisNotificationPublisher(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.publisher = RedisNotificationPublisher(client=self.client, channel="test:notifications")

    def test_publishes_json(self):
        self.client.publish.return_value = 1
        self.publisher.handle(notification_event())
        channel, payload = self.client.publish.call_args.args
        self.assertEqual(channel, "test:notifications")
        self.assertEqual(json.loads(payload)['title'], "Reservation confirmed")

    def test_no_subscribers(self):
        self.client.publish.return_value = 0
        self.assertFalse(self.publisher.publish(notification_event().data['notification']))

    def test_redis_error(self):
        self.client.publish.side_effect = redis.ConnectionError("down")
        self.assertFalse(self.publisher.publish(notification_event().data['notification']))


class TestMongoLogArchiver(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.collection = self.client.__getitem__.return_value.__getitem__.return_value
        self.archiver = MongoLogArchiver(client=self.client, database="test")

    def test_creates_indexes(self):
        self.assertEqual(self.collection.create_index.call_count, 2)

    def test_archives_log_by_id(self):
        self.collection.insert_one.return_value.acknowledged = True
        log = {'id': "log-1", 'action_type': "LOGIN"}
        self.assertTrue(self.archiver.save(log))
        document = self.collection.insert_one.call_args.args[0]
        self.assertEqual(document['_id'], "log-1")
        self.assertNotIn('_id', log)

    def test_mongo_error(self):
        self.collection.insert_one.side_effect = PyMongoError("down")
        self.assertFalse(self.archiver.save({'id': "log-1"}))


if __name__ == '__main__':
    unittest.main()
