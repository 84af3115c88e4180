from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Type

from member_sync.contexts.membership.domain.customer import customer_fields_from_payload, normalize_customer_id
from member_sync.contexts.membership.infrastructure.customer_repository import CustomerRepository
from member_sync.contexts.membership.projections.base import KeyedLock, Projector, update_state
from member_sync.core import (
    CUSTOMER_EVENT_TYPES,
    CustomerCreated,
    CustomerDeleted,
    CustomerEvent,
    CustomerImported,
    CustomerUpdated,
    DomainEvent,
    IdWasChecked,
    MembershipActivated,
    MembershipDeactivated,
    SubscriptionImported,
)
from member_sync.core.event_schemas import validate_event
from member_sync.errors import AppError, NotFoundError, ValidationError
from member_sync.observability import bind_event_id, observe_projection_failed, observe_projection_processed


_LOGGER = logging.getLogger("member_sync")

Transition = Callable[[CustomerRepository, CustomerEvent], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_customer_data(repository: CustomerRepository, event: DomainEvent) -> None:
    # Import, create and update share one path. Update on an unknown id creates the
    # customer ("create-on-update"); member/id_checked are only defaulted on insert.
    payload = event.customer
    repository.upsert(payload["id"], customer_fields_from_payload(payload))


def _apply_customer_deleted(repository: CustomerRepository, event: DomainEvent) -> None:
    repository.delete(event.customer_id)


def _apply_subscription_imported(repository: CustomerRepository, event: DomainEvent) -> None:
    subscription = event.subscription
    customer_id = normalize_customer_id(subscription["customer_id"])
    if not repository.exists(customer_id):
        raise NotFoundError(
            f"subscription {subscription.get('id')} references unknown customer {customer_id}",
            payload={"customer_id": customer_id, "subscription_id": subscription.get("id")},
        )
    # Membership is driven by activation/deactivation events only.
    _LOGGER.debug(
        "subscription_imported",
        extra={
            "customer_id": customer_id,
            "subscription_id": subscription.get("id"),
            "subscription_status": subscription.get("status"),
        },
    )


def _apply_membership_activated(repository: CustomerRepository, event: DomainEvent) -> None:
    repository.save(event.customer_id, {"member": True})


def _apply_membership_deactivated(repository: CustomerRepository, event: DomainEvent) -> None:
    repository.save(event.customer_id, {"member": False})


def _apply_id_was_checked(repository: CustomerRepository, event: DomainEvent) -> None:
    repository.save(event.customer_id, {"id_checked": True})


TRANSITIONS: Dict[Type[DomainEvent], Transition] = {
    CustomerImported: _apply_customer_data,
    CustomerCreated: _apply_customer_data,
    CustomerUpdated: _apply_customer_data,
    CustomerDeleted: _apply_customer_deleted,
    SubscriptionImported: _apply_subscription_imported,
    MembershipActivated: _apply_membership_activated,
    MembershipDeactivated: _apply_membership_deactivated,
    IdWasChecked: _apply_id_was_checked,
}


def _assert_transitions_exhaustive() -> None:
    unmapped = [event_type.__name__ for event_type in CUSTOMER_EVENT_TYPES if event_type not in TRANSITIONS]
    if unmapped:
        raise RuntimeError(f"customer projector has no transition for: {', '.join(unmapped)}")


_assert_transitions_exhaustive()


# Shared by every projector in the process unless one is given its own.
_CUSTOMER_LOCKS = KeyedLock()


def customer_id_of(event: DomainEvent) -> str:
    if isinstance(event, (CustomerImported, CustomerCreated, CustomerUpdated)):
        return normalize_customer_id(event.customer.get("id"))
    if isinstance(event, SubscriptionImported):
        return normalize_customer_id(event.subscription.get("customer_id"))
    return normalize_customer_id(getattr(event, "customer_id", None))


class CustomerProjector(Projector):
    """Applies customer events to the read model.

    Events for one customer id are serialized across all projectors in the process,
    so services built per request or per CLI command still exclude each other.
    """

    name = "customers"
    handled_events = CUSTOMER_EVENT_TYPES

    def __init__(
        self,
        repository_factory: Callable[[Any], CustomerRepository] | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._repository_factory = repository_factory or CustomerRepository
        self._locks = locks if locks is not None else _CUSTOMER_LOCKS

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    def process(self, event: DomainEvent, db) -> None:
        event_type = type(event).__name__
        transition = TRANSITIONS.get(type(event))
        started_at = time.perf_counter()

        with bind_event_id(event.event_id):
            try:
                if transition is None:
                    raise ValidationError(f"unsupported event type: {event_type}", payload={"event_type": event_type})
                validate_event(event)
                customer_id = customer_id_of(event)
                with self._locks.hold(customer_id):
                    with db.transaction():
                        transition(self._repository_factory(db), event)
                        update_state(
                            db,
                            projector=self.name,
                            status="ok",
                            last_event_id=event.event_id,
                            last_event_type=event_type,
                            last_processed_at=_utc_now(),
                        )
            except Exception as exc:
                self._record_failure(db, event, exc)
                raise

        duration_ms = (time.perf_counter() - started_at) * 1000.0
        observe_projection_processed(self.name, event_type, duration_ms)
        _LOGGER.info(
            "customer_projection_applied",
            extra={
                "projector": self.name,
                "event_type": event_type,
                "customer_id": customer_id,
                "duration_ms": round(duration_ms, 3),
            },
        )

    def _record_failure(self, db, event: DomainEvent, exc: Exception) -> None:
        event_type = type(event).__name__
        error_code = exc.code if isinstance(exc, AppError) else "system_error"
        critical = exc.critical if isinstance(exc, AppError) else True
        observe_projection_failed(self.name, event_type, error_code)

        log_method = _LOGGER.error if critical else _LOGGER.warning
        log_method(
            "customer_projection_failed",
            extra={
                "projector": self.name,
                "event_type": event_type,
                "error_code": error_code,
                "details": str(exc),
            },
            exc_info=critical,
        )

        try:
            with db.transaction():
                update_state(
                    db,
                    projector=self.name,
                    status="error",
                    last_event_id=event.event_id,
                    last_event_type=event_type,
                    last_processed_at=_utc_now(),
                    last_error=f"{error_code}: {exc}",
                )
        except Exception:
            _LOGGER.exception(
                "projection_state_update_failed",
                extra={"projector": self.name, "event_type": event_type},
            )
