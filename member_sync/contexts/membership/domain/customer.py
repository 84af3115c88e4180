from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping

from member_sync.errors import ValidationError


DATA_FIELDS: tuple[str, ...] = (
    "username",
    "email",
    "first_name",
    "last_name",
    "display_name",
    "github_username",
    "slack_id",
    "birthday",
    "access_card_temporary_code",
)

# Sub-state owned by membership/identity events; customer-data events never write these.
FLAG_FIELDS: tuple[str, ...] = ("member", "id_checked")


@dataclass(frozen=True)
class CustomerRecord:
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    github_username: str | None = None
    slack_id: str | None = None
    birthday: date | None = None
    access_card_temporary_code: str | None = None
    member: bool = False
    id_checked: bool = False

    def birthday_matches(self, value: Any) -> bool:
        """Compare the stored birthday with ``value`` on the date component only."""
        return self.birthday == normalize_birthday(value)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["birthday"] = self.birthday.isoformat() if self.birthday else None
        return payload


def normalize_customer_id(value: Any) -> str:
    if isinstance(value, bool):
        raise ValidationError(f"customer id must be a string or integer, got {value!r}")
    normalized = str(value if value is not None else "").strip()
    if not normalized:
        raise ValidationError("customer id is required")
    return normalized


def normalize_birthday(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(normalized).date()
    except ValueError as exc:
        raise ValidationError(f"birthday is not a valid date: {raw}", payload={"field": "birthday"}) from exc


def derive_display_name(payload: Mapping[str, Any]) -> str:
    explicit = payload.get("display_name")
    if explicit is not None and str(explicit).strip():
        return str(explicit)
    return f"{_text(payload.get('first_name'))} {_text(payload.get('last_name'))}"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def customer_fields_from_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Data fields written by customer import/create/update, in ``DATA_FIELDS`` order."""
    return {
        "username": _text(payload.get("username")),
        "email": _text(payload.get("email")),
        "first_name": _text(payload.get("first_name")),
        "last_name": _text(payload.get("last_name")),
        "display_name": derive_display_name(payload),
        "github_username": _optional_text(payload.get("github_username")),
        "slack_id": _optional_text(payload.get("slack_id")),
        "birthday": normalize_birthday(payload.get("birthday")),
        "access_card_temporary_code": _optional_text(payload.get("access_card_temporary_code")),
    }
