from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Type, Union

from member_sync.observability import observe_domain_event_published


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)


@dataclass(frozen=True, kw_only=True)
class CustomerImported(DomainEvent):
    customer: Dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class CustomerCreated(DomainEvent):
    customer: Dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class CustomerUpdated(DomainEvent):
    customer: Dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class CustomerDeleted(DomainEvent):
    customer_id: Any


@dataclass(frozen=True, kw_only=True)
class SubscriptionImported(DomainEvent):
    subscription: Dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class MembershipActivated(DomainEvent):
    customer_id: Any


@dataclass(frozen=True, kw_only=True)
class MembershipDeactivated(DomainEvent):
    customer_id: Any


@dataclass(frozen=True, kw_only=True)
class IdWasChecked(DomainEvent):
    customer_id: Any


CustomerEvent = Union[
    CustomerImported,
    CustomerCreated,
    CustomerUpdated,
    CustomerDeleted,
    SubscriptionImported,
    MembershipActivated,
    MembershipDeactivated,
    IdWasChecked,
]

CUSTOMER_EVENT_TYPES: tuple[Type[DomainEvent], ...] = (
    CustomerImported,
    CustomerCreated,
    CustomerUpdated,
    CustomerDeleted,
    SubscriptionImported,
    MembershipActivated,
    MembershipDeactivated,
    IdWasChecked,
)


class EventBus:
    """Synchronous, in-order delivery of events to the handlers subscribed to their exact type.

    A failing handler stops delivery of that event and the exception reaches the caller
    of :meth:`publish`.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("member_sync")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            handlers.append(handler)

    def handlers_for(self, event_type: Type[DomainEvent]) -> tuple[EventHandler, ...]:
        with self._lock:
            return tuple(self._handlers.get(event_type, []))

    def publish(self, event: DomainEvent) -> None:
        event_type = type(event).__name__
        observe_domain_event_published(event_type)
        for handler in self.handlers_for(type(event)):
            try:
                handler(event)
            except Exception:
                self._logger.exception(
                    "event_handler_failed",
                    extra={"event_type": event_type, "event_id": event.event_id},
                )
                raise

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
