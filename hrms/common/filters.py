"""Typed filter criteria and sorting for list endpoints.

List endpoints describe what they want as small immutable criteria
objects (``Eq``, ``In``, ``Range``, ``Overlaps``) instead of ad hoc dicts.
``apply_criteria`` is the only place that turns them into SQLAlchemy
expressions, so the criteria stay independent of the query DSL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Union

from sqlalchemy import Select, and_
from sqlalchemy.orm import InstrumentedAttribute

from hrms.common.exceptions import ValidationException


# ── Criteria ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Sequence[Any]


@dataclass(frozen=True)
class Range:
    """Inclusive bounds; either side may be open."""

    field: str
    lower: Any = None
    upper: Any = None


@dataclass(frozen=True)
class Overlaps:
    """Rows whose [start_field, end_field] interval intersects [start, end]."""

    start_field: str
    end_field: str
    start: Any = None
    end: Any = None


Criterion = Union[Eq, In, Range, Overlaps]


def apply_criteria(
    query: Select,
    model: Any,
    criteria: Iterable[Criterion],
) -> Select:
    """AND every criterion onto *query*. ``None`` values are skipped."""
    conditions: list = []

    for c in criteria:
        if isinstance(c, Eq):
            if c.value is not None:
                conditions.append(_column(model, c.field) == c.value)

        elif isinstance(c, In):
            if c.values is not None:
                conditions.append(_column(model, c.field).in_(list(c.values)))

        elif isinstance(c, Range):
            col = _column(model, c.field)
            if c.lower is not None:
                conditions.append(col >= c.lower)
            if c.upper is not None:
                conditions.append(col <= c.upper)

        elif isinstance(c, Overlaps):
            if c.end is not None:
                conditions.append(_column(model, c.start_field) <= c.end)
            if c.start is not None:
                conditions.append(_column(model, c.end_field) >= c.start)

        else:
            raise TypeError(f"Unsupported criterion: {c!r}")

    if conditions:
        query = query.where(and_(*conditions))
    return query


# ── Sorting ─────────────────────────────────────────────────────────

def apply_sorting(
    query: Select,
    model: Any,
    sort: Optional[str],
    *,
    allowed: Optional[Sequence[str]] = None,
) -> Select:
    """
    Parse a sort string like ``"-start_date"`` and apply ORDER BY.

    * Leading ``-`` → DESC; otherwise ASC.
    * Unknown (or not allowed) columns are rejected with a 422.
    """
    if not sort:
        return query

    descending = sort.startswith("-")
    col_name = sort.lstrip("-")

    col = _get_column(model, col_name)
    if col is None or (allowed is not None and col_name not in allowed):
        raise ValidationException(
            {"sort": [f"Cannot sort by '{col_name}'."]},
        )
    return query.order_by(col.desc() if descending else col.asc())


# ── Internal helpers ────────────────────────────────────────────────

def _get_column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    """Safely retrieve a mapped column attribute by name."""
    attr = getattr(model, name, None)
    return attr if isinstance(attr, InstrumentedAttribute) else None


def _column(model: Any, name: str) -> InstrumentedAttribute:
    col = _get_column(model, name)
    if col is None:
        raise ValueError(f"{model.__name__} has no column '{name}'")
    return col
