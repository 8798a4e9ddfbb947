"""Pick the fields to transform out of a record and put replacements back.

CSV rows are flat, so names are exact column names. JSON objects may be
nested; a name containing dots (``patient.ssn``) walks into child objects
unless the record has that exact key at the top level.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .exceptions import FieldNotFoundError
from .models import Record

_MISSING = object()


@dataclass
class Selection:
    values: Dict[str, Any] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    record_index: Optional[int] = None

    def not_found(self) -> List[FieldNotFoundError]:
        return [FieldNotFoundError(name, self.record_index) for name in self.missing]


def parse_field_list(raw: str) -> List[str]:
    """Split a ``--fields`` value into names, dropping blanks and duplicates."""
    names: List[str] = []
    for part in raw.split(","):
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return names


def overlapping_fields(names: Iterable[str]) -> List[Tuple[str, str]]:
    """Pairs where one name addresses a value nested inside another, e.g.
    ``patient`` and ``patient.ssn``. Encrypting both would nest an envelope
    inside another."""
    names = list(names)
    return [
        (outer, inner)
        for outer in names
        for inner in names
        if inner != outer and inner.startswith(outer + ".")
    ]


def _path(record: Record, name: str) -> Tuple[str, ...]:
    if name in record or "." not in name:
        return (name,)
    return tuple(name.split("."))


def get_value(record: Record, name: str) -> Any:
    """Return the value addressed by ``name`` or the ``_MISSING`` sentinel."""
    current: Any = record
    for part in _path(record, name):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def select_fields(
    record: Record,
    names: Iterable[str],
    record_index: Optional[int] = None,
    none_is_absent: bool = False,
) -> Selection:
    """Collect the requested values present in ``record``.

    ``none_is_absent`` is set for CSV rows, where the reader pads short rows
    with ``None``.
    """
    selection = Selection(record_index=record_index)
    for name in names:
        value = get_value(record, name)
        if value is _MISSING or (none_is_absent and value is None):
            selection.missing.append(name)
        else:
            selection.values[name] = value
    return selection


def replace_fields(record: Record, replacements: Dict[str, Any]) -> Record:
    """Return a copy of ``record`` with the addressed values replaced."""
    result = copy.deepcopy(record)
    for name, value in replacements.items():
        path = _path(record, name)
        target = result
        for part in path[:-1]:
            target = target[part]
        target[path[-1]] = value
    return result
