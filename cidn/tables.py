"""Tabular views of registry objects."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable


class IncludeObject(str, Enum):
    NONE = "None"
    METADATA = "Metadata"
    OBJECT = "Object"


@dataclass
class TableOptions:
    no_headers: bool = False
    include_object: IncludeObject | None = None


@dataclass
class ColumnDefinition:
    name: str
    type: str
    description: str = ""
    format: str = ""


@dataclass
class TableRow:
    cells: list[Any]
    object: Any = None


@dataclass
class Table:
    column_definitions: list[ColumnDefinition] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    resource_version: str = ""
    continue_token: str = ""
    remaining_item_count: int | None = None


_IEC_SUFFIXES = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_ibytes(size: int) -> str:
    """Format a byte count, read as unsigned 64-bit, with IEC units."""
    size %= 1 << 64
    if size < 10:
        return f"{size} B"
    exponent = math.floor(math.log(size) / math.log(1024))
    value = math.floor(size / 1024**exponent * 10 + 0.5) / 10
    text = f"{value:.1f}" if value < 10 else f"{value:.0f}"
    return f"{text} {_IEC_SUFFIXES[exponent]}"


def format_age(seconds: float) -> str:
    """Format a duration truncated to whole seconds, e.g. ``1h2m3s``."""
    total = int(seconds)
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    hours, rest = divmod(abs(total), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def failed_phase_label(phase, conditions, failed_phase) -> str:
    """Return the phase text, listing condition types when the phase is the failed one."""
    label = phase.value if phase is not None else ""
    if phase is not None and phase == failed_phase:
        types = [condition.type for condition in conditions]
        if types:
            label += "(" + ",".join(types) + ")"
    return label


def _row_object(obj, include: IncludeObject | None):
    if include in (None, IncludeObject.METADATA):
        return copy.deepcopy(obj.meta)
    if include == IncludeObject.OBJECT:
        return obj
    return None


def build_table(
    objects,
    columns: Iterable[ColumnDefinition],
    options,
    row_cells: Callable[[Any], list[Any]],
) -> Table:
    """Build a table from one object or a list of objects."""
    if not isinstance(options, TableOptions):
        options = TableOptions()
    table = Table()
    if isinstance(objects, (list, tuple)):
        items = list(objects)
    else:
        items = [objects]
        meta = getattr(objects, "meta", None)
        if meta is not None:
            table.resource_version = meta.resource_version
    if not options.no_headers:
        table.column_definitions = list(columns)
    for obj in items:
        cells = row_cells(obj)
        table.rows.append(TableRow(cells=cells, object=_row_object(obj, options.include_object)))
    return table