"""Storage rules for Multipart resources."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from .models import FieldError, Multipart
from .tables import ColumnDefinition, Table, build_table, format_age


def get_attrs(obj) -> tuple[dict[str, str], dict[str, str]]:
    """Return the label set and selectable field set of a multipart."""
    if not isinstance(obj, Multipart):
        raise TypeError("given object is not a Multipart")
    return dict(obj.meta.labels), {"metadata.name": obj.meta.name}


_COLUMNS = [
    ColumnDefinition(name="Name", type="string", format="name", description="Name of the multipart"),
    ColumnDefinition(name="Age", type="date", description="Creation timestamp of the multipart"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_multiparts(*objs) -> list[FieldError]:
    for obj in objs:
        if not isinstance(obj, Multipart):
            raise TypeError(f"expected Multipart, got {type(obj).__name__}")
    return []


class MultipartStrategy:
    """Create and update rules for multipart uploads."""

    namespace_scoped = False
    allow_create_on_update = False
    allow_unconditional_update = False

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow

    def short_names(self) -> list[str]:
        return ["mp"]

    def validate(self, multipart: Multipart) -> list[FieldError]:
        """Accept any multipart; only the object's kind is checked."""
        return _check_multiparts(multipart)

    def validate_update(self, new: Multipart, old: Multipart) -> list[FieldError]:
        """Accept any multipart update; only the objects' kinds are checked."""
        return _check_multiparts(new, old)

    def _row_cells(self, obj) -> list:
        if not isinstance(obj, Multipart):
            raise TypeError(f"expected Multipart, got {type(obj).__name__}")
        age = (self._clock() - obj.meta.creation_timestamp).total_seconds()
        return [obj.meta.name, format_age(age)]

    def convert_to_table(self, obj, options=None) -> Table:
        return build_table(obj, _COLUMNS, options, self._row_cells)