"""
Pagination and ``qs`` filter parsing shared by list operations.

Requests carry ``current_page`` / ``page_size`` and an optional ``qs``
string. ``qs`` uses URL query syntax:

    status=ACTIVE&name=spring&sort=-start_date

- ``field=value`` filters on a field the service allows. Each allowed field
  declares whether it matches exactly, by case-insensitive substring, or by
  enum value.
- ``sort=field`` / ``sort=-field`` sets the ordering (``-`` is descending).
  Several sort keys may be comma separated.

Responses use the shape:

    {"results": [...], "pagination": {"current", "pageSize", "totalPage", "totalItem"}}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type
from urllib.parse import parse_qsl

from sqlalchemy import Select

from .exceptions import ValidationError

_TRUE_VALUES = ("true", "1", "yes")
_FALSE_VALUES = ("false", "0", "no")


@dataclass(slots=True)
class PaginationQuery:
    current_page: int = 1
    page_size: Optional[int] = None
    qs: Optional[str] = None

    def resolve(self, default_size: int = 20, max_size: int = 100) -> Tuple[int, int]:
        """Return ``(page, size)`` after validation."""
        if self.current_page < 1:
            raise ValidationError("current_page", "current_page must be >= 1")
        size = self.page_size if self.page_size is not None else default_size
        if size < 1:
            raise ValidationError("page_size", "page_size must be >= 1")
        return self.current_page, min(size, max_size)


@dataclass(frozen=True, slots=True)
class FilterField:
    """How one ``qs`` key maps onto a column."""

    column: Any
    mode: str = "exact"  # exact | contains | enum | int | bool
    enum: Optional[Type[Enum]] = None


@dataclass(slots=True)
class ParsedQs:
    filters: Dict[str, str] = field(default_factory=dict)
    sort: List[Tuple[str, bool]] = field(default_factory=list)  # (field, descending)


def parse_qs(qs: Optional[str]) -> ParsedQs:
    parsed = ParsedQs()
    if not qs:
        return parsed
    for key, value in parse_qsl(qs, keep_blank_values=False):
        key = key.strip()
        if key == "sort":
            for part in value.split(","):
                part = part.strip()
                if not part:
                    continue
                descending = part.startswith("-")
                parsed.sort.append((part.lstrip("-+"), descending))
        else:
            parsed.filters[key] = value.strip()
    return parsed


def apply_qs(
    stmt: Select,
    qs: Optional[str],
    *,
    filters: Mapping[str, FilterField],
    sortable: Mapping[str, Any],
    default_order: Sequence[Any] = (),
) -> Select:
    """
    Apply ``qs`` filters and ordering to a select statement.

    Raises:
        ValidationError: For unknown filter/sort keys or malformed values
    """
    parsed = parse_qs(qs)

    for key, raw in parsed.filters.items():
        allowed = filters.get(key)
        if allowed is None:
            raise ValidationError("qs", f"Unsupported filter '{key}'")
        if allowed.mode == "contains":
            stmt = stmt.where(allowed.column.ilike(f"%{raw}%"))
        elif allowed.mode == "enum":
            try:
                value = allowed.enum(raw.upper())
            except ValueError:
                raise ValidationError("qs", f"Invalid value '{raw}' for '{key}'") from None
            stmt = stmt.where(allowed.column == value)
        elif allowed.mode == "int":
            try:
                stmt = stmt.where(allowed.column == int(raw))
            except ValueError:
                raise ValidationError("qs", f"'{key}' must be an integer") from None
        elif allowed.mode == "bool":
            flag = raw.lower()
            if flag not in _TRUE_VALUES and flag not in _FALSE_VALUES:
                raise ValidationError("qs", f"'{key}' must be true or false")
            stmt = stmt.where(allowed.column.is_(flag in _TRUE_VALUES))
        else:
            stmt = stmt.where(allowed.column == raw)

    order: List[Any] = []
    for name, descending in parsed.sort:
        column = sortable.get(name)
        if column is None:
            raise ValidationError("qs", f"Unsupported sort field '{name}'")
        order.append(column.desc() if descending else column.asc())

    return stmt.order_by(*(order or default_order))


def build_page(results: List[Any], *, page: int, size: int, total: int) -> Dict[str, Any]:
    return {
        "results": results,
        "pagination": {
            "current": page,
            "pageSize": size,
            "totalPage": math.ceil(total / size) if size else 0,
            "totalItem": total,
        },
    }
