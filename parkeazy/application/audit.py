# File: parkeazy/application/audit.py
"""
Audit Logger

Appends an immutable SystemLog for every privileged or financial action,
inside the caller's transaction. Once that transaction commits the entry is
published on the event bus and, when the actor's role subscribes to the
action, a transient notification is raised as well.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union

from .base import ApplicationService, UnitOfWorkFactory
from ..domain.models import SystemLog, UserRole
from ..infrastructure.messaging import DomainEvent, EventBus, EventType, Notification
from ..infrastructure.repositories import UnitOfWork
from ..infrastructure.resilience import RetryPolicy


SYSTEM_ACTOR_ID = "system"


class ActionType(str, Enum):
    """Audited actions"""
    # Slots
    SLOT_CREATED = "SLOT_CREATED"
    SLOT_UPDATE = "SLOT_UPDATE"
    SLOT_DELETED = "SLOT_DELETED"

    # Reservations and payments
    RESERVATION_CREATED = "RESERVATION_CREATED"
    RESERVATION_EXTENDED = "RESERVATION_EXTENDED"
    RESERVATION_ENDED = "RESERVATION_ENDED"
    PAYMENT_SETTLED = "PAYMENT_SETTLED"
    PAYMENT_METHOD_ADDED = "PAYMENT_METHOD_ADDED"
    PAYMENT_METHOD_REMOVED = "PAYMENT_METHOD_REMOVED"

    # Sessions
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    PROFILE_UPDATE = "PROFILE_UPDATE"

    # User administration
    USER_CREATED = "USER_CREATED"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETED = "USER_DELETED"
    ROLE_UPDATE = "ROLE_UPDATE"
    ROLE_DEMOTION = "ROLE_DEMOTION"
    ADMIN_CREATED = "ADMIN_CREATED"
    ADMIN_UPDATE = "ADMIN_UPDATE"

    # Settings
    CURRENCY_RATES_UPDATED = "CURRENCY_RATES_UPDATED"


USER_ACTIONS: FrozenSet[ActionType] = frozenset({
    ActionType.RESERVATION_CREATED,
    ActionType.RESERVATION_EXTENDED,
    ActionType.RESERVATION_ENDED,
    ActionType.PAYMENT_SETTLED,
    ActionType.PAYMENT_METHOD_ADDED,
    ActionType.PAYMENT_METHOD_REMOVED,
    ActionType.LOGIN,
    ActionType.LOGOUT,
    ActionType.PROFILE_UPDATE,
})

ADMIN_ACTIONS: FrozenSet[ActionType] = frozenset({
    ActionType.SLOT_CREATED,
    ActionType.SLOT_UPDATE,
    ActionType.SLOT_DELETED,
})

# Which actions raise a notification for the acting role
NOTIFIED_ACTIONS: Dict[UserRole, FrozenSet[ActionType]] = {
    UserRole.USER: USER_ACTIONS,
    UserRole.ADMIN: ADMIN_ACTIONS,
    UserRole.SUPER_ADMIN: frozenset(ActionType),
}

NOTIFICATION_TITLES: Dict[ActionType, str] = {
    ActionType.SLOT_CREATED: "Parking slot added",
    ActionType.SLOT_UPDATE: "Parking slot updated",
    ActionType.SLOT_DELETED: "Parking slot removed",
    ActionType.RESERVATION_CREATED: "Reservation confirmed",
    ActionType.RESERVATION_EXTENDED: "Reservation extended",
    ActionType.RESERVATION_ENDED: "Reservation ended",
    ActionType.PAYMENT_SETTLED: "Payment successful",
    ActionType.PAYMENT_METHOD_ADDED: "Payment method saved",
    ActionType.PAYMENT_METHOD_REMOVED: "Payment method removed",
    ActionType.LOGIN: "Signed in",
    ActionType.LOGOUT: "Signed out",
    ActionType.PROFILE_UPDATE: "Profile updated",
    ActionType.USER_CREATED: "User created",
    ActionType.USER_UPDATE: "User updated",
    ActionType.USER_DELETED: "User deleted",
    ActionType.ROLE_UPDATE: "Role changed",
    ActionType.ROLE_DEMOTION: "Admin demoted",
    ActionType.ADMIN_CREATED: "Admin created",
    ActionType.ADMIN_UPDATE: "Admin updated",
    ActionType.CURRENCY_RATES_UPDATED: "Exchange rates updated",
}

HIGH_PRIORITY_ACTIONS = frozenset({
    ActionType.USER_DELETED,
    ActionType.ROLE_DEMOTION,
    ActionType.SLOT_DELETED,
})


def _action_value(action_type: Union[ActionType, str]) -> str:
    return action_type.value if isinstance(action_type, ActionType) else str(action_type)


class AuditLogger(ApplicationService):
    """Append-only system log with post-commit notification fan-out"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
        read_policy: Optional[RetryPolicy] = None
    ):
        super().__init__(uow_factory, read_policy)
        self._event_bus = event_bus
        self._clock = clock

    def record(
        self,
        actor_id: str,
        actor_role: UserRole,
        action_type: Union[ActionType, str],
        details: str,
        metadata: Optional[Dict[str, Any]] = None,
        uow: Optional[UnitOfWork] = None
    ) -> SystemLog:
        """Append a log entry; it becomes visible when the transaction commits"""
        log = SystemLog(
            actor_id=actor_id,
            actor_role=UserRole(actor_role),
            action_type=_action_value(action_type),
            details=details,
            metadata=dict(metadata or {}),
            timestamp=self._clock()
        )

        with self.unit_of_work(uow) as active:
            active.system_logs.append(log)
            active.add_commit_hook(lambda: self._committed(log))

        return log

    def notify(
        self,
        actor_role: UserRole,
        action_type: Union[ActionType, str],
        details: str
    ) -> Optional[Notification]:
        """Notification for the actor, or None if their role does not follow this action"""
        try:
            action = ActionType(_action_value(action_type))
        except ValueError:
            return None

        role = UserRole(actor_role)
        if action not in NOTIFIED_ACTIONS.get(role, frozenset()):
            return None

        return Notification(
            source=self.__class__.__name__,
            action_type=action.value,
            recipient_role=role.value,
            title=NOTIFICATION_TITLES.get(action, action.value.replace('_', ' ').title()),
            body=details,
            priority="high" if action in HIGH_PRIORITY_ACTIONS else "normal"
        )

    def _committed(self, log: SystemLog) -> None:
        self._logger.info(f"[{log.action_type}] {log.actor_role.value}:{log.actor_id} {log.details}")
        self._fan_out(log)

    def _fan_out(self, log: SystemLog) -> None:
        if self._event_bus is None:
            return

        self._event_bus.publish(DomainEvent(
            event_type=EventType.LOG_RECORDED,
            source=self.__class__.__name__,
            data={'log': log.to_dict()}
        ))

        notification = self.notify(log.actor_role, log.action_type, log.details)
        if notification is not None:
            self._event_bus.publish(DomainEvent(
                event_type=EventType.NOTIFICATION_RAISED,
                source=self.__class__.__name__,
                data={'notification': notification}
            ))

    def logs(self, action_type: Optional[Union[ActionType, str]] = None,
             limit: Optional[int] = None) -> List[SystemLog]:
        """Log entries newest first; empty if the store cannot be read"""
        wanted = _action_value(action_type) if action_type else None
        return self._bulk_read(lambda uow: uow.system_logs.list(wanted, limit), label="system logs")

    def action_types(self) -> List[str]:
        """Distinct action types present in the log, for filtering"""
        return self._bulk_read(lambda uow: uow.system_logs.action_types(), label="log action types")
