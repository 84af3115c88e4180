from member_sync.core.event_bus import (
    CUSTOMER_EVENT_TYPES,
    CustomerCreated,
    CustomerDeleted,
    CustomerEvent,
    CustomerImported,
    CustomerUpdated,
    DomainEvent,
    EventBus,
    IdWasChecked,
    MembershipActivated,
    MembershipDeactivated,
    SubscriptionImported,
)

__all__ = [
    "CUSTOMER_EVENT_TYPES",
    "CustomerEvent",
    "DomainEvent",
    "EventBus",
    "CustomerImported",
    "CustomerCreated",
    "CustomerUpdated",
    "CustomerDeleted",
    "SubscriptionImported",
    "MembershipActivated",
    "MembershipDeactivated",
    "IdWasChecked",
]
