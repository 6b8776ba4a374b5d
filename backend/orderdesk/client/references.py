# Overview: Normalization of loosely-shaped API fields at the ingestion boundary.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Reference:
    """A brand/category/product pointer: an id, optionally with its name."""
    id: int | None
    name: str | None = None

    def label(self) -> str:
        if self.name:
            return self.name
        return f"#{self.id}" if self.id is not None else ""


def normalize_reference(value: Any) -> Reference | None:
    """
    Accepts an id (int or digit string), a bare name, or an inline object
    with id/name. Everything downstream sees a Reference or None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Reference):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a reference")
    if isinstance(value, int):
        return Reference(id=value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return Reference(id=int(stripped))
        return Reference(id=None, name=stripped)
    if isinstance(value, dict):
        raw_id = value.get("id")
        return Reference(
            id=int(raw_id) if raw_id is not None else None,
            name=value.get("name"),
        )
    raise TypeError(f"unsupported reference shape: {type(value).__name__}")


def unwrap_list(payload: Any, key: str) -> tuple[list, int]:
    """
    List endpoints answer with a bare array or {"<key>": [...], "total": N}.

    Returns (rows, total).
    """
    if isinstance(payload, list):
        return payload, len(payload)
    if isinstance(payload, dict):
        rows = payload.get(key)
        if rows is None:
            rows = payload.get("items", [])
        total = payload.get("total")
        return rows, total if isinstance(total, int) else len(rows)
    return [], 0


def normalize_inventory_row(row: dict) -> dict:
    """Resolve brand/category into References and name into plain text."""
    normalized = dict(row)
    normalized["brand"] = normalize_reference(row.get("brand"))
    normalized["category"] = normalize_reference(row.get("category"))
    name = row.get("name")
    if isinstance(name, dict):
        name = name.get("name")
    normalized["name"] = name
    return normalized
