"""Storage rules for Blob resources: validation, canonical chunking and tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from .models import Blob, BlobPhase, FieldError
from .tables import (
    ColumnDefinition,
    Table,
    build_table,
    failed_phase_label,
    format_age,
    format_ibytes,
)

FIVE_MIB = 5 * 1024 * 1024
FIVE_GIB = 5 * 1024 * 1024 * 1024
MAX_CHUNKS = 10000


def chunks_number_by_minimum_chunk_size(total: int, minimum_chunk_size: int) -> int:
    """Number of chunks so that each holds at least the minimum size, within 1..10000."""
    chunks_number = total // minimum_chunk_size
    if chunks_number <= 1:
        return 1
    return min(chunks_number, MAX_CHUNKS)


def chunk_size_for(total: int, chunks_number: int) -> int:
    """Chunk size for splitting ``total`` bytes into ``chunks_number`` parts."""
    if total <= FIVE_MIB:
        return total
    chunk_size = -(-total // chunks_number)
    return min(chunk_size, FIVE_GIB)


def chunks_number_for(total: int, chunk_size: int) -> int:
    """Number of chunks of ``chunk_size`` needed to cover ``total`` bytes."""
    if chunk_size == 0 or chunk_size >= total:
        return 1
    return -(-total // chunk_size)


def get_attrs(obj) -> tuple[dict[str, str], dict[str, str]]:
    """Return the label set and selectable field set of a blob."""
    if not isinstance(obj, Blob):
        raise TypeError("given object is not a Blob")
    return dict(obj.meta.labels), {"metadata.name": obj.meta.name}


_COLUMNS = [
    ColumnDefinition(name="Name", type="string", format="name", description="Name of the blob"),
    ColumnDefinition(name="Handler", type="string", description="Handler for the blob"),
    ColumnDefinition(name="Phase", type="string", description="Current phase of the blob"),
    ColumnDefinition(name="Progress", type="string", description="Progress of the blob"),
    ColumnDefinition(name="Chunks", type="string", description="Completed chunks of the blob"),
    ColumnDefinition(name="Age", type="date", description="Creation timestamp of the blob"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlobStrategy:
    """Create and update rules for blobs."""

    namespace_scoped = False
    allow_create_on_update = False
    allow_unconditional_update = False

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow

    def short_names(self) -> list[str]:
        return ["bl"]

    def prepare_for_update(self, new: Blob, old: Blob) -> None:
        """Keep the stored status: spec updates may not change it."""
        new.status = old.deep_copy().status

    def validate(self, blob: Blob) -> list[FieldError]:
        errors = []
        if not blob.spec.source:
            errors.append(FieldError.required("spec.source", "at least one source must be specified"))
        if not blob.spec.destination:
            errors.append(
                FieldError.required("spec.destination", "at least one destination must be specified")
            )
        return errors

    def validate_update(self, new: Blob, old: Blob) -> list[FieldError]:
        errors = []
        if len(new.spec.source) < len(old.spec.source):
            errors.append(FieldError.forbidden("spec.source", "cannot reduce number of sources"))
        for index, (old_source, new_source) in enumerate(zip(old.spec.source, new.spec.source)):
            if new_source.url != old_source.url:
                errors.append(
                    FieldError.forbidden(f"spec.source[{index}].url", "source URL is immutable")
                )
        if new.spec.destination != old.spec.destination:
            errors.append(FieldError.forbidden("spec.destination", "destination is immutable"))
        if old.status.total != 0 and new.status.total != old.status.total:
            errors.append(FieldError.forbidden("status.total", "total is immutable"))
        if old.spec.chunk_size != 0 and new.spec.chunk_size != old.spec.chunk_size:
            errors.append(FieldError.forbidden("spec.chunkSize", "chunkSize is immutable"))
        if old.spec.chunks_number != 0 and new.spec.chunks_number != old.spec.chunks_number:
            errors.append(FieldError.forbidden("spec.chunksNumber", "chunksNumber is immutable"))
        return errors

    def canonicalize(self, blob: Blob) -> None:
        """Default the phase and derive the chunk layout once the total is known."""
        status, spec = blob.status, blob.spec
        if status.phase is None:
            status.phase = BlobPhase.PENDING
        total = status.total
        if total == 0:
            return
        if not status.accept_ranges:
            spec.chunks_number, spec.chunk_size = 1, total
        elif spec.minimum_chunk_size != 0:
            spec.chunks_number = chunks_number_by_minimum_chunk_size(total, spec.minimum_chunk_size)
            spec.chunk_size = chunk_size_for(total, spec.chunks_number)
        elif spec.chunk_size == 0 and spec.chunks_number != 0:
            spec.chunk_size = chunk_size_for(total, spec.chunks_number)
        elif spec.chunk_size != 0 and spec.chunks_number == 0:
            spec.chunks_number = chunks_number_for(total, spec.chunk_size)
        else:
            spec.chunks_number, spec.chunk_size = 1, total

    def _row_cells(self, obj) -> list:
        if not isinstance(obj, Blob):
            raise TypeError(f"expected Blob, got {type(obj).__name__}")
        status, spec = obj.status, obj.spec
        phase = failed_phase_label(status.phase, status.conditions, BlobPhase.FAILED)
        progress = "<none>"
        if status.total != 0:
            if status.progress == status.total:
                progress = format_ibytes(status.total)
            elif status.total > 0:
                progress = f"{format_ibytes(status.progress)}/{format_ibytes(status.total)}"
            else:
                progress = format_ibytes(status.progress)
        chunks = "<none>"
        if spec.chunks_number > 1:
            chunks = f"{status.succeeded_chunks}/{spec.chunks_number}"
        age = (self._clock() - obj.meta.creation_timestamp).total_seconds()
        return [obj.meta.name, status.handler_name, phase, progress, chunks, format_age(age)]

    def convert_to_table(self, obj, options=None) -> Table:
        return build_table(obj, _COLUMNS, options, self._row_cells)


class BlobStatusStrategy(BlobStrategy):
    """Rules for the status subresource: the spec cannot be changed through it."""

    def prepare_for_update(self, new: Blob, old: Blob) -> None:
        new.spec = old.deep_copy().spec