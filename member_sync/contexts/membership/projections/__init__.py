from member_sync.contexts.membership.projections.base import (
    KeyedLock,
    Projector,
    clear_state,
    read_state,
    update_state,
)
from member_sync.contexts.membership.projections.customer_projector import (
    TRANSITIONS,
    CustomerProjector,
    customer_id_of,
)

__all__ = [
    "Projector",
    "KeyedLock",
    "update_state",
    "read_state",
    "clear_state",
    "TRANSITIONS",
    "CustomerProjector",
    "customer_id_of",
]
