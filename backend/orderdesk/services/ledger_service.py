# Overview: Append-only activity ledger shared by orders, inventory, payments and invoices.

from __future__ import annotations

import json
from typing import Any, Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
from orderdesk.time_utils import utcnow
"""
Activity Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain change they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> LedgerEvent:
    """
    Append-only ledger event. The category is the event_type prefix
    ("order.confirmed" -> "order").
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_type.split(".", 1)[0],
        entity_type=entity_type,
        entity_id=entity_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(*, entity_type: str, entity_id: int) -> list[LedgerEvent]:
    return (
        LedgerEvent.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(LedgerEvent.occurred_at.asc(), LedgerEvent.id.asc())
        .all()
    )
