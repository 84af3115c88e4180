from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from member_sync.core.event_bus import CUSTOMER_EVENT_TYPES, DomainEvent
from member_sync.errors import ValidationError


_LOGGER = logging.getLogger("member_sync")


_CUSTOMER_SCHEMA: dict[str, Any] = {
    "payload_attr": "customer",
    "required_fields": ("id", "username", "email", "first_name", "last_name"),
    "optional_fields": (
        "display_name",
        "github_username",
        "slack_id",
        "birthday",
        "access_card_temporary_code",
    ),
}

_CUSTOMER_REF_SCHEMA: dict[str, Any] = {
    "payload_attr": None,
    "required_fields": ("customer_id",),
    "optional_fields": (),
}

EVENT_SCHEMAS: dict[str, dict[str, Any]] = {
    "CustomerImported": _CUSTOMER_SCHEMA,
    "CustomerCreated": _CUSTOMER_SCHEMA,
    "CustomerUpdated": _CUSTOMER_SCHEMA,
    "CustomerDeleted": _CUSTOMER_REF_SCHEMA,
    "SubscriptionImported": {
        "payload_attr": "subscription",
        "required_fields": ("id", "customer_id", "status"),
        "optional_fields": (),
    },
    "MembershipActivated": _CUSTOMER_REF_SCHEMA,
    "MembershipDeactivated": _CUSTOMER_REF_SCHEMA,
    "IdWasChecked": _CUSTOMER_REF_SCHEMA,
}

EVENT_REGISTRY: dict[str, type[DomainEvent]] = {event_type.__name__: event_type for event_type in CUSTOMER_EVENT_TYPES}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def event_payload(event: DomainEvent) -> Dict[str, Any]:
    """The mapping the schema of ``event`` is checked against."""
    schema = EVENT_SCHEMAS.get(type(event).__name__) or {}
    payload_attr = schema.get("payload_attr")
    if payload_attr:
        return dict(getattr(event, payload_attr, None) or {})
    return {"customer_id": getattr(event, "customer_id", None)}


def validate_event(event: DomainEvent) -> None:
    schema_name = type(event).__name__
    schema = EVENT_SCHEMAS.get(schema_name)
    if schema is None:
        raise ValidationError(f"unsupported event type: {schema_name}", payload={"event_type": schema_name})

    payload_attr = schema.get("payload_attr")
    if payload_attr and not isinstance(getattr(event, payload_attr, None), Mapping):
        raise ValidationError(
            f"{schema_name}.{payload_attr} must be a mapping",
            payload={"event_type": schema_name, "event_id": event.event_id},
        )

    payload = event_payload(event)
    missing_fields = [name for name in schema["required_fields"] if name not in payload]
    blank_ids = [name for name in ("id", "customer_id") if name in payload and _is_blank(payload.get(name))]
    if not missing_fields and not blank_ids:
        return

    _LOGGER.error(
        "domain_event_schema_invalid",
        extra={
            "event_id": event.event_id,
            "schema_name": schema_name,
            "missing_fields": missing_fields,
            "blank_identifiers": blank_ids,
        },
    )
    raise ValidationError(
        f"{schema_name} payload is missing required fields",
        payload={
            "event_type": schema_name,
            "event_id": event.event_id,
            "missing_fields": missing_fields + blank_ids,
        },
    )


def _parse_occurred_at(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        resolved = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
        try:
            resolved = datetime.fromisoformat(normalized)
        except ValueError as exc:
            raise ValidationError(f"occurred_at is not an ISO timestamp: {raw}") from exc
    if resolved.tzinfo is None:
        resolved = resolved.replace(tzinfo=timezone.utc)
    return resolved.astimezone(timezone.utc)


def decode_event(envelope: Mapping[str, Any]) -> DomainEvent:
    """Build an event object from ``{"event_type", "event_id"?, "occurred_at"?, "payload"}``."""
    if not isinstance(envelope, Mapping):
        raise ValidationError("event envelope must be a JSON object")

    event_type = str(envelope.get("event_type") or "").strip()
    event_cls = EVENT_REGISTRY.get(event_type)
    if event_cls is None:
        raise ValidationError(f"unknown event type: {event_type or '<missing>'}", payload={"event_type": event_type})

    payload = envelope.get("payload")
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{event_type} envelope has no payload object", payload={"event_type": event_type})

    kwargs: Dict[str, Any] = {}
    event_id = str(envelope.get("event_id") or "").strip()
    if event_id:
        kwargs["event_id"] = event_id
    occurred_at = _parse_occurred_at(envelope.get("occurred_at"))
    if occurred_at is not None:
        kwargs["occurred_at"] = occurred_at

    payload_attr = EVENT_SCHEMAS[event_type]["payload_attr"]
    if payload_attr:
        kwargs[payload_attr] = dict(payload)
    else:
        kwargs["customer_id"] = payload.get("customer_id", payload.get("id"))

    event = event_cls(**kwargs)
    validate_event(event)
    return event


def encode_event(event: DomainEvent) -> Dict[str, Any]:
    return {
        "event_type": type(event).__name__,
        "event_id": event.event_id,
        "occurred_at": event.occurred_at.isoformat().replace("+00:00", "Z"),
        "payload": event_payload(event),
    }
