# File: parkeazy/infrastructure/messaging.py
"""
Messaging Infrastructure for Park-Eazy

This module implements the post-commit fan-out of audit activity:
1. Event Bus - intra-process publish/subscribe keyed by event type
2. Notification Inbox - bounded buffer of transient notifications for the UI
3. Redis publisher - pushes notifications to a Redis Pub/Sub channel
4. Mongo log archiver - copies committed audit entries to MongoDB

Delivery is best-effort: a failing handler is logged and never affects the
transaction that produced the event.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Optional, Dict, List, Any, Deque
from datetime import datetime
import logging
import json
import threading
from dataclasses import dataclass, asdict, field
from enum import Enum
from uuid import UUID, uuid4

import redis
import pymongo
from pymongo.errors import PyMongoError


# ============================================================================
# MESSAGE TYPES AND ENUMS
# ============================================================================

class MessageType(str, Enum):
    """Types of messages in the system"""
    DOMAIN_EVENT = "domain_event"
    NOTIFICATION = "notification"


class EventType(str, Enum):
    """Domain event types"""
    LOG_RECORDED = "log_recorded"
    NOTIFICATION_RAISED = "notification_raised"


# ============================================================================
# MESSAGE BASE CLASSES
# ============================================================================

@dataclass
class Message:
    """Base message class"""
    message_id: UUID = field(default_factory=uuid4)
    message_type: MessageType = MessageType.DOMAIN_EVENT
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary"""
        data = asdict(self)
        data['message_id'] = str(self.message_id)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert message to JSON string"""
        return json.dumps(self.to_dict(), default=str)


@dataclass
class DomainEvent(Message):
    """Domain event message"""
    event_type: EventType = EventType.LOG_RECORDED
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.message_type = MessageType.DOMAIN_EVENT


@dataclass
class Notification(Message):
    """Transient message shown to the actor after an audited action"""
    action_type: str = ""
    recipient_role: Optional[str] = None
    title: str = ""
    body: str = ""
    priority: str = "normal"  # low, normal, high

    def __post_init__(self):
        self.message_type = MessageType.NOTIFICATION


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Abstract base class for event handlers"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        """Handle a domain event"""
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        """Check if this handler can handle the event"""
        return True


# ============================================================================
# EVENT BUS (In-memory)
# ============================================================================

class EventBus:
    """
    In-memory event bus for intra-process event publishing

    Handlers run synchronously in subscription order; an exception in one
    handler is logged and the remaining handlers still run.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[EventHandler]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to events of a specific type"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []

        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type}")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe handler from events"""
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type}")

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers"""
        self._logger.info(f"Publishing event: {event.event_type.value} (ID: {event.message_id})")

        for handler in list(self._subscribers.get(event.event_type, [])):
            if handler.can_handle(event):
                try:
                    handler.handle(event)
                    self._logger.debug(f"Event handled by {handler.__class__.__name__}")
                except Exception as e:
                    self._logger.error(f"Error handling event {event.event_type} with {handler.__class__.__name__}: {e}")


# ============================================================================
# NOTIFICATION INBOX
# ============================================================================

class NotificationInbox(EventHandler):
    """Keeps the most recent notifications until the UI drains them"""

    def __init__(self, capacity: int = 50):
        self._notifications: Deque[Notification] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def can_handle(self, event: DomainEvent) -> bool:
        return isinstance(event.data.get('notification'), Notification)

    def handle(self, event: DomainEvent) -> None:
        with self._lock:
            self._notifications.append(event.data['notification'])

    def pending(self) -> List[Notification]:
        with self._lock:
            return list(self._notifications)

    def drain(self) -> List[Notification]:
        """Return and forget every buffered notification"""
        with self._lock:
            notifications = list(self._notifications)
            self._notifications.clear()
            return notifications


# ============================================================================
# REDIS NOTIFICATION PUBLISHER
# ============================================================================

class RedisNotificationPublisher(EventHandler):
    """Publishes notifications on a Redis Pub/Sub channel"""

    def __init__(self, redis_url: str = "redis://localhost:6379",
                 channel: str = "parkeazy:notifications",
                 client: Optional[redis.Redis] = None, **kwargs):
        self.redis_url = redis_url
        self.channel = channel
        self._logger = logging.getLogger(self.__class__.__name__)

        # Redis connection
        self.redis_client = client or redis.Redis.from_url(redis_url, **kwargs)

    def can_handle(self, event: DomainEvent) -> bool:
        return isinstance(event.data.get('notification'), Notification)

    def handle(self, event: DomainEvent) -> None:
        self.publish(event.data['notification'])

    def publish(self, notification: Notification) -> bool:
        """Publish a notification to the Redis channel"""
        try:
            result = self.redis_client.publish(self.channel, notification.to_json())
            self._logger.debug(f"Published notification to {self.channel}: {notification.message_id}")
            return result > 0
        except redis.RedisError as e:
            self._logger.error(f"Error publishing to Redis: {e}")
            return False

    def close(self):
        self.redis_client.close()
        self._logger.info("Redis publisher closed")


# ============================================================================
# MONGO LOG ARCHIVER
# ============================================================================

class MongoLogArchiver(EventHandler):
    """
    Copies committed audit entries into MongoDB

    The relational store stays the system of record; the archive is for
    long-term retention and ad-hoc querying.
    """

    def __init__(self, mongo_url: str = "mongodb://localhost:27017",
                 database: str = "parkeazy", client: Optional[pymongo.MongoClient] = None, **kwargs):
        self.mongo_url = mongo_url
        self._logger = logging.getLogger(self.__class__.__name__)

        # MongoDB client
        self.client = client or pymongo.MongoClient(mongo_url, **kwargs)
        self.db = self.client[database]
        self.logs_collection = self.db['system_logs']

        # Create indexes
        self.logs_collection.create_index([('action_type', 1)])
        self.logs_collection.create_index([('timestamp', -1)])

    def can_handle(self, event: DomainEvent) -> bool:
        return 'log' in event.data

    def handle(self, event: DomainEvent) -> None:
        self.save(event.data['log'])

    def save(self, log: Dict[str, Any]) -> bool:
        """Save a serialized SystemLog to the archive"""
        try:
            document = dict(log)
            document['_id'] = document['id']
            result = self.logs_collection.insert_one(document)

            self._logger.debug(f"Archived log {document['id']} ({document.get('action_type')})")
            return result.acknowledged
        except PyMongoError as e:
            self._logger.error(f"Error archiving log: {e}")
            return False

    def close(self):
        """Close MongoDB connection"""
        self.client.close()
        self._logger.info("Log archiver closed")
