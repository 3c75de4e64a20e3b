from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from servicelog.services.errors import ResolutionFailure
from servicelog.services.field_types import FieldDefinition

_LOG = logging.getLogger("servicelog.field_resolver")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

RESOLUTION_NOTICE = "Could not load custom fields; the form can still be submitted without them."


class ActiveFieldSource(Protocol):
    def list_active(self, client_id: Any = None) -> list[FieldDefinition]:
        ...


def _creation_key(field: FieldDefinition) -> datetime:
    created = field.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def order_fields(fields: Iterable[FieldDefinition]) -> list[FieldDefinition]:
    # sorted() is stable: equal (order, created_at) keep the source order.
    return sorted(fields, key=lambda item: (item.order, _creation_key(item)))


def select_applicable(fields: Iterable[FieldDefinition], client_id: Any = None) -> list[FieldDefinition]:
    wanted = str(client_id) if client_id not in (None, "") else None
    seen: set[str] = set()
    applicable: list[FieldDefinition] = []
    for item in fields:
        if not item.active or item.key in seen:
            continue
        if item.client_id is not None and (wanted is None or str(item.client_id) != wanted):
            continue
        seen.add(item.key)
        applicable.append(item)
    return order_fields(applicable)


@dataclass
class Resolution:
    client_id: Any
    fields: list[FieldDefinition] = field(default_factory=list)
    notice: str | None = None

    @property
    def degraded(self) -> bool:
        return self.notice is not None


class FieldResolver:
    """Computes the ordered custom field set that applies to a client."""

    def __init__(self, source: ActiveFieldSource | Callable[[Any], list[FieldDefinition]]):
        self._list_active = source.list_active if hasattr(source, "list_active") else source

    def resolve(self, client_id: Any = None) -> list[FieldDefinition]:
        try:
            fields = self._list_active(client_id)
        except (SQLAlchemyError, ConnectionError, TimeoutError, OSError) as exc:
            raise ResolutionFailure("Custom field listing is unavailable", client_id=client_id) from exc
        return select_applicable(fields, client_id)

    def resolve_or_degrade(self, client_id: Any = None) -> Resolution:
        try:
            return Resolution(client_id=client_id, fields=self.resolve(client_id))
        except Exception as exc:
            # Stored rows that no longer parse degrade the same way as an unreachable store.
            _LOG.warning("field resolution degraded client=%s: %s", client_id, exc.__cause__ or exc)
            return Resolution(client_id=client_id, fields=[], notice=RESOLUTION_NOTICE)
