from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Iterable, List

from flask import current_app, has_app_context

from member_sync.contexts.membership.domain.customer import CustomerRecord
from member_sync.contexts.membership.infrastructure.customer_repository import CustomerRepository
from member_sync.contexts.membership.projections import CustomerProjector, clear_state, read_state
from member_sync.core import DomainEvent, EventBus
from member_sync.db import get_db
from member_sync.observability import observe_replay


_LOGGER = logging.getLogger("member_sync")


class MembershipProjectionService:
    """Wires the customer projector to an event bus and exposes replay and read queries.

    Register handlers from one instance per bus; per-customer locking is shared
    process-wide, so short-lived instances for the CLI or `/health` are safe.
    """

    def __init__(
        self,
        projector: CustomerProjector | None = None,
        db_provider: Callable[[], Any] | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._projector = projector or CustomerProjector()
        self._db_provider = db_provider or get_db
        self._enabled_override = enabled
        self._lock = threading.Lock()
        self._handlers_registered = False

    @property
    def projector(self) -> CustomerProjector:
        return self._projector

    @staticmethod
    def _env_bool(name: str, default: bool) -> bool:
        raw = os.environ.get(name)
        if raw is None:
            return default
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}

    def _projection_enabled(self) -> bool:
        if self._enabled_override is not None:
            return bool(self._enabled_override)
        if has_app_context():
            return bool(current_app.config.get("CUSTOMER_PROJECTION_ENABLED", True))
        return self._env_bool("CUSTOMER_PROJECTION_ENABLED", True)

    def _replay_log_every(self) -> int:
        if has_app_context():
            return max(0, int(current_app.config.get("CUSTOMER_REPLAY_BATCH_LOG_EVERY", 500) or 0))
        return 500

    def register_event_handlers(self, event_bus: EventBus) -> None:
        with self._lock:
            if self._handlers_registered:
                return
            self._handlers_registered = True

        for event_type in self._projector.handled_events:
            event_bus.subscribe(event_type, self.handle)

    def handle(self, event: DomainEvent) -> None:
        if not self._projection_enabled():
            _LOGGER.debug(
                "customer_projection_disabled",
                extra={"event_type": type(event).__name__, "event_id": event.event_id},
            )
            return
        self._projector.process(event, self._db_provider())

    def replay(self, events: Iterable[DomainEvent], *, db=None) -> Dict[str, Any]:
        """Rebuild the read model from scratch by applying ``events`` in order."""
        resolved_db = db if db is not None else self._db_provider()
        started_at = time.perf_counter()
        log_every = self._replay_log_every()
        result = "success"
        total_events = 0
        processed = 0

        try:
            with resolved_db.transaction():
                CustomerRepository(resolved_db).clear()
                clear_state(resolved_db, projector=self._projector.name)

            for event in events:
                total_events += 1
                self._projector.process(event, resolved_db)
                processed += 1
                if log_every and processed % log_every == 0:
                    _LOGGER.info("customer_replay_progress", extra={"processed": processed})
        except Exception:
            result = "failed"
            raise
        finally:
            observe_replay(result, max(0.0, time.perf_counter() - started_at))

        duration_ms = int(round(max(0.0, time.perf_counter() - started_at) * 1000.0))
        _LOGGER.info(
            "customer_replay_finished",
            extra={"total_events": total_events, "processed": processed, "duration_ms": duration_ms},
        )
        return {
            "projector": self._projector.name,
            "total_events": total_events,
            "processed": processed,
            "duration_ms": duration_ms,
        }

    def find_customer(self, customer_id: Any, *, db=None) -> CustomerRecord | None:
        resolved_db = db if db is not None else self._db_provider()
        return CustomerRepository(resolved_db).find(customer_id)

    def list_customers(self, *, db=None) -> List[CustomerRecord]:
        resolved_db = db if db is not None else self._db_provider()
        return CustomerRepository(resolved_db).list_all()

    def projection_state(self, *, db=None) -> Dict[str, Any]:
        resolved_db = db if db is not None else self._db_provider()
        return read_state(resolved_db, projector=self._projector.name)
