from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping

from member_sync.contexts.membership.domain.customer import (
    DATA_FIELDS,
    FLAG_FIELDS,
    CustomerRecord,
    normalize_birthday,
    normalize_customer_id,
)
from member_sync.errors import NotFoundError, ValidationError


_SELECT_COLUMNS = ", ".join(("id", *DATA_FIELDS, *FLAG_FIELDS))


def _row_to_dict(row: Any) -> Dict[str, Any]:
    if row is None:
        return {}
    if isinstance(row, dict):
        return dict(row)
    keys = getattr(row, "keys", None)
    if callable(keys):
        return {key: row[key] for key in row.keys()}
    return {}


def _row_to_record(row: Any) -> CustomerRecord | None:
    data = _row_to_dict(row)
    if not data:
        return None
    return CustomerRecord(
        id=str(data["id"]),
        username=str(data.get("username") or ""),
        email=str(data.get("email") or ""),
        first_name=str(data.get("first_name") or ""),
        last_name=str(data.get("last_name") or ""),
        display_name=str(data.get("display_name") or ""),
        github_username=data.get("github_username"),
        slack_id=data.get("slack_id"),
        birthday=normalize_birthday(data.get("birthday")),
        access_card_temporary_code=data.get("access_card_temporary_code"),
        member=bool(data.get("member")),
        id_checked=bool(data.get("id_checked")),
    )


def _bind(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


class CustomerRepository:
    """Keyed access to the ``customers`` read model."""

    def __init__(self, db) -> None:
        self.db = db

    def find(self, customer_id: Any) -> CustomerRecord | None:
        row = self.db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM customers WHERE id = ?",
            (normalize_customer_id(customer_id),),
        ).fetchone()
        return _row_to_record(row)

    def exists(self, customer_id: Any) -> bool:
        row = self.db.execute(
            "SELECT 1 AS found FROM customers WHERE id = ?",
            (normalize_customer_id(customer_id),),
        ).fetchone()
        return row is not None

    def list_all(self) -> List[CustomerRecord]:
        rows = self.db.execute(f"SELECT {_SELECT_COLUMNS} FROM customers ORDER BY id ASC").fetchall()
        return [record for record in (_row_to_record(row) for row in rows) if record is not None]

    def upsert(self, customer_id: Any, fields: Mapping[str, Any]) -> None:
        """Insert with ``member``/``id_checked`` defaults, or overwrite data fields of an existing row."""
        normalized_id = normalize_customer_id(customer_id)
        columns = [name for name in DATA_FIELDS if name in fields]
        unknown = sorted(set(fields) - set(DATA_FIELDS))
        if unknown:
            raise ValidationError(f"upsert only writes customer data fields, got {unknown}")

        insert_columns = ", ".join(("id", *columns, *FLAG_FIELDS))
        placeholders = ", ".join("?" for _ in range(1 + len(columns) + len(FLAG_FIELDS)))
        update_clause = ", ".join([*(f"{name} = excluded.{name}" for name in columns), "updated_at = CURRENT_TIMESTAMP"])
        self.db.execute(
            f"""
            INSERT INTO customers ({insert_columns}, updated_at)
            VALUES ({placeholders}, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET {update_clause}
            """,
            (normalized_id, *(_bind(fields[name]) for name in columns), False, False),
        )

    def save(self, customer_id: Any, fields: Mapping[str, Any]) -> None:
        """Targeted update of existing columns; the customer must exist."""
        normalized_id = normalize_customer_id(customer_id)
        columns = list(fields)
        allowed = set(DATA_FIELDS) | set(FLAG_FIELDS)
        unknown = sorted(name for name in columns if name not in allowed)
        if unknown:
            raise ValidationError(f"unknown customer fields: {unknown}")
        if not columns:
            if not self.exists(normalized_id):
                raise NotFoundError(f"customer {normalized_id} not found", payload={"customer_id": normalized_id})
            return

        set_clause = ", ".join(f"{name} = ?" for name in columns)
        cursor = self.db.execute(
            f"UPDATE customers SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*(_bind(fields[name]) for name in columns), normalized_id),
        )
        if int(getattr(cursor, "rowcount", 0) or 0) <= 0:
            raise NotFoundError(f"customer {normalized_id} not found", payload={"customer_id": normalized_id})

    def delete(self, customer_id: Any) -> None:
        normalized_id = normalize_customer_id(customer_id)
        cursor = self.db.execute("DELETE FROM customers WHERE id = ?", (normalized_id,))
        if int(getattr(cursor, "rowcount", 0) or 0) <= 0:
            raise NotFoundError(f"customer {normalized_id} not found", payload={"customer_id": normalized_id})

    def clear(self) -> None:
        self.db.execute("DELETE FROM customers")
