from __future__ import annotations

import contextlib
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, Iterator, Type

from member_sync.core import DomainEvent


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_projector_name(projector: str | None) -> str:
    normalized = str(projector or "").strip()
    if not normalized:
        raise ValueError("projector name is required for projection state")
    return normalized


def _timestamp_value(value: datetime | None) -> str:
    resolved = value or _utc_now()
    if resolved.tzinfo is None:
        resolved = resolved.replace(tzinfo=timezone.utc)
    return resolved.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class Projector(ABC):
    name: str = "projector"
    handled_events: tuple[Type[DomainEvent], ...] = ()

    @abstractmethod
    def process(self, event: DomainEvent, db) -> None:
        raise NotImplementedError


class KeyedLock:
    """One mutex per key; work on different keys is not serialized."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @contextlib.contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                remaining = self._holders.get(key, 1) - 1
                if remaining <= 0:
                    self._holders.pop(key, None)
                    self._locks.pop(key, None)
                else:
                    self._holders[key] = remaining

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def update_state(
    db,
    *,
    projector: str,
    status: str,
    last_event_id: str | None = None,
    last_event_type: str | None = None,
    last_error: str | None = None,
    last_processed_at: datetime | None = None,
) -> None:
    normalized_projector = _normalize_projector_name(projector)
    normalized_status = str(status or "").strip() or "running"

    db.execute(
        """
        INSERT INTO projection_state (
            projector, last_event_id, last_event_type, last_processed_at, status, last_error, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(projector) DO UPDATE SET
            last_event_id = excluded.last_event_id,
            last_event_type = excluded.last_event_type,
            last_processed_at = excluded.last_processed_at,
            status = excluded.status,
            last_error = excluded.last_error,
            updated_at = CURRENT_TIMESTAMP
        """,
        (
            normalized_projector,
            str(last_event_id or "").strip() or None,
            str(last_event_type or "").strip() or None,
            _timestamp_value(last_processed_at),
            normalized_status,
            (str(last_error or "")[:2000] if last_error else None),
        ),
    )


def read_state(db, *, projector: str) -> Dict[str, Any]:
    row = db.execute(
        """
        SELECT projector, last_event_id, last_event_type, last_processed_at, status, last_error
        FROM projection_state
        WHERE projector = ?
        """,
        (_normalize_projector_name(projector),),
    ).fetchone()
    if row is None:
        return {}
    if isinstance(row, dict):
        return dict(row)
    return {key: row[key] for key in row.keys()}


def clear_state(db, *, projector: str) -> None:
    db.execute("DELETE FROM projection_state WHERE projector = ?", (_normalize_projector_name(projector),))

