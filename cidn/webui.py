"""Server-sent events describing blob changes for the web UI."""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass
from typing import BinaryIO

from .models import BLOB_DISPLAY_NAME_ANNOTATION, Blob, BlobPhase

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class Event:
    """A single server-sent event."""

    id: str
    type: str
    data: bytes = b""

    def write_to(self, stream: BinaryIO) -> int:
        """Write the event in SSE wire format and return the number of bytes written."""
        payload = (
            f"id: {self.id}\nevent: {self.type}\ndata: ".encode()
            + self.data
            + b"\n\n"
        )
        stream.write(payload)
        return len(payload)


def _encode_json(value) -> bytes:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return text.encode()


def clean_blob_for_webui(blob: Blob) -> dict:
    """Return the reduced view of a blob shown by the web UI, empty optional fields dropped."""
    status, spec = blob.status, blob.spec
    phase = status.phase.value if status.phase is not None else ""
    if (
        status.phase == BlobPhase.RUNNING
        and status.progress == 0
        and status.running_chunks == 0
        and status.failed_chunks == 0
        and status.succeeded_chunks == 0
    ):
        phase = BlobPhase.PENDING.value

    cleaned: dict = {"name": blob.meta.name}
    display_name = blob.meta.annotations.get(BLOB_DISPLAY_NAME_ANNOTATION, "")
    if display_name:
        cleaned["displayName"] = display_name
    if spec.priority:
        cleaned["priority"] = spec.priority
    cleaned["total"] = status.total
    cleaned["chunksNumber"] = spec.chunks_number
    cleaned["phase"] = phase
    cleaned["progress"] = status.progress
    for key, value in (
        ("pendingChunks", status.pending_chunks),
        ("runningChunks", status.running_chunks),
        ("succeededChunks", status.succeeded_chunks),
        ("failedChunks", status.failed_chunks),
    ):
        if value:
            cleaned[key] = value
    if status.conditions:
        cleaned["errors"] = [f"{c.type}: {c.message}" for c in status.conditions]
    return cleaned


def create_event(event_type: str, blob: Blob) -> Event:
    """Build the event for a blob; deletions carry no data."""
    event = Event(id=blob.meta.uid, type=event_type)
    if event_type != "DELETE":
        event.data = _encode_json(clean_blob_for_webui(blob))
    return event


class EventAggregator:
    """Collects blob changes, sending significant ones at once and coalescing progress updates."""

    def __init__(self):
        self._lock = threading.Lock()
        self._buffer: dict[str, Event | None] = {}
        self._immediate: deque[Event] = deque()

    def on_add(self, blob: Blob) -> None:
        with self._lock:
            self._immediate.append(create_event("ADD", blob))
            self._buffer[blob.meta.uid] = None

    def on_update(self, old: Blob, new: Blob) -> None:
        with self._lock:
            event = create_event("UPDATE", new)
            uid = new.meta.uid
            if (
                uid in self._buffer
                and old.status.phase == new.status.phase
                and new.status.progress != new.status.total
            ):
                self._buffer[uid] = event
            else:
                self._buffer[uid] = None
                self._immediate.append(event)

    def on_delete(self, blob: Blob) -> None:
        with self._lock:
            self._buffer.pop(blob.meta.uid, None)
            self._immediate.append(create_event("DELETE", blob))

    def take_immediate(self) -> list[Event]:
        """Return and remove the events that must be sent without delay."""
        with self._lock:
            events = list(self._immediate)
            self._immediate.clear()
            return events

    def flush(self) -> list[Event]:
        """Return the coalesced updates and forget every tracked blob."""
        with self._lock:
            events = [event for event in self._buffer.values() if event is not None]
            self._buffer.clear()
            return events