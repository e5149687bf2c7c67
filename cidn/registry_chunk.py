"""Storage rules for Chunk resources: validation, immutability and tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from .models import Chunk, ChunkPhase, FieldError
from .tables import (
    ColumnDefinition,
    Table,
    build_table,
    failed_phase_label,
    format_age,
    format_ibytes,
)


def get_attrs(obj) -> tuple[dict[str, str], dict[str, str]]:
    """Return the label set and selectable field set of a chunk."""
    if not isinstance(obj, Chunk):
        raise TypeError("given object is not a Chunk")
    return dict(obj.meta.labels), {"metadata.name": obj.meta.name}


_COLUMNS = [
    ColumnDefinition(name="Name", type="string", format="name", description="Name of the chunk"),
    ColumnDefinition(name="Handler", type="string", description="Handler for the chunk"),
    ColumnDefinition(name="Phase", type="string", description="Current phase of the chunk"),
    ColumnDefinition(name="Progress", type="string", description="Progress of the chunk"),
    ColumnDefinition(name="Age", type="date", description="Creation timestamp of the chunk"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChunkStrategy:
    """Create and update rules for chunks."""

    namespace_scoped = False
    allow_create_on_update = False
    allow_unconditional_update = False

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow

    def short_names(self) -> list[str]:
        return ["ck"]

    def prepare_for_update(self, new: Chunk, old: Chunk) -> None:
        """Keep the stored status: spec updates may not change it."""
        new.status = old.deep_copy().status

    def validate(self, chunk: Chunk) -> list[FieldError]:
        errors = []
        if not chunk.spec.source.request.url:
            errors.append(
                FieldError.required("spec.source.request.url", "source URL must be specified")
            )
        return errors

    def validate_update(self, new: Chunk, old: Chunk) -> list[FieldError]:
        errors = []
        if new.spec != old.spec:
            errors.append(FieldError.forbidden("spec", "spec is immutable"))
        return errors

    def canonicalize(self, chunk: Chunk) -> None:
        """Default the phase to pending."""
        if chunk.status.phase is None:
            chunk.status.phase = ChunkPhase.PENDING

    def _row_cells(self, obj) -> list:
        if not isinstance(obj, Chunk):
            raise TypeError(f"expected Chunk, got {type(obj).__name__}")
        status, spec = obj.status, obj.spec
        phase = failed_phase_label(status.phase, status.conditions, ChunkPhase.FAILED)
        progress = "<none>"
        if spec.total != 0:
            if status.progress == spec.total:
                progress = format_ibytes(spec.total)
            elif spec.total > 0:
                progress = f"{format_ibytes(status.progress)}/{format_ibytes(spec.total)}"
            else:
                progress = format_ibytes(status.progress)
        age = (self._clock() - obj.meta.creation_timestamp).total_seconds()
        return [obj.meta.name, status.handler_name, phase, progress, format_age(age)]

    def convert_to_table(self, obj, options=None) -> Table:
        return build_table(obj, _COLUMNS, options, self._row_cells)


class ChunkStatusStrategy(ChunkStrategy):
    """Rules for the status subresource: the spec cannot be changed through it."""

    def prepare_for_update(self, new: Chunk, old: Chunk) -> None:
        new.spec = old.deep_copy().spec