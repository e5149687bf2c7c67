"""Storage rules for Bearer resources."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from .models import Bearer, BearerPhase, FieldError
from .tables import ColumnDefinition, Table, build_table, failed_phase_label, format_age


def get_attrs(obj) -> tuple[dict[str, str], dict[str, str]]:
    """Return the label set and selectable field set of a bearer."""
    if not isinstance(obj, Bearer):
        raise TypeError("given object is not a Bearer")
    return dict(obj.meta.labels), {"metadata.name": obj.meta.name}


_COLUMNS = [
    ColumnDefinition(name="Name", type="string", format="name", description="Name of the bearer"),
    ColumnDefinition(name="Handler", type="string", description="Handler for the bearer"),
    ColumnDefinition(name="Phase", type="string", description="Current phase of the bearer"),
    ColumnDefinition(name="Age", type="date", description="Creation timestamp of the bearer"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_bearers(*objs) -> list[FieldError]:
    for obj in objs:
        if not isinstance(obj, Bearer):
            raise TypeError(f"expected Bearer, got {type(obj).__name__}")
    return []


class BearerStrategy:
    """Create and update rules for bearers."""

    namespace_scoped = False
    allow_create_on_update = False
    allow_unconditional_update = False

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow

    def prepare_for_update(self, new: Bearer, old: Bearer) -> None:
        """Keep the stored status: spec updates may not change it."""
        new.status = old.deep_copy().status

    def validate(self, bearer: Bearer) -> list[FieldError]:
        """Accept any bearer; only the object's kind is checked."""
        return _check_bearers(bearer)

    def validate_update(self, new: Bearer, old: Bearer) -> list[FieldError]:
        """Accept any bearer update; only the objects' kinds are checked."""
        return _check_bearers(new, old)

    def canonicalize(self, bearer: Bearer) -> None:
        """Default the phase to pending."""
        if bearer.status.phase is None:
            bearer.status.phase = BearerPhase.PENDING

    def _row_cells(self, obj) -> list:
        if not isinstance(obj, Bearer):
            raise TypeError(f"expected Bearer, got {type(obj).__name__}")
        status = obj.status
        phase = failed_phase_label(status.phase, status.conditions, BearerPhase.FAILED)
        age = (self._clock() - obj.meta.creation_timestamp).total_seconds()
        return [obj.meta.name, status.handler_name, phase, format_age(age)]

    def convert_to_table(self, obj, options=None) -> Table:
        return build_table(obj, _COLUMNS, options, self._row_cells)


class BearerStatusStrategy(BearerStrategy):
    """Rules for the status subresource: the spec cannot be changed through it."""

    def prepare_for_update(self, new: Bearer, old: Bearer) -> None:
        new.spec = old.deep_copy().spec