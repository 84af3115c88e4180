from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import click
from flask import Flask

from member_sync.contexts.membership.application.service import MembershipProjectionService
from member_sync.core import DomainEvent
from member_sync.core.event_schemas import decode_event
from member_sync.errors import AppError, ValidationError


def iter_event_file(path: Path) -> Iterator[DomainEvent]:
    """Decode a JSON Lines file of event envelopes; blank lines are skipped."""
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            raw = line.strip()
            if not raw:
                continue
            try:
                envelope = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"line {line_number}: invalid JSON ({exc.msg})") from exc
            try:
                yield decode_event(envelope)
            except ValidationError as exc:
                raise ValidationError(
                    f"line {line_number}: {exc}",
                    payload={**exc.payload, "line": line_number},
                ) from exc


def register_customer_cli(app: Flask, service_factory=MembershipProjectionService) -> None:
    @app.cli.group("customers")
    def customers_group() -> None:
        """Customer read model maintenance."""

    @customers_group.command("replay")
    @click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    def customers_replay(events_file: Path) -> None:
        service = service_factory()
        try:
            events = list(iter_event_file(events_file))
            summary = service.replay(events)
        except AppError as exc:
            raise click.ClickException(f"{exc.code}: {exc}") from exc
        click.echo(json.dumps(summary, sort_keys=True))

    @customers_group.command("show")
    @click.argument("customer_id")
    def customers_show(customer_id: str) -> None:
        service = service_factory()
        record = service.find_customer(customer_id)
        if record is None:
            raise click.ClickException(f"customer {customer_id} not found")
        click.echo(json.dumps(record.to_dict(), sort_keys=True))

    @customers_group.command("list")
    def customers_list() -> None:
        service = service_factory()
        for record in service.list_customers():
            click.echo(json.dumps(record.to_dict(), sort_keys=True))
