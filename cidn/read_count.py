"""A reader wrapper that counts the bytes passing through it."""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError
from typing import BinaryIO


class ReadCount:
    """Wrap a binary reader, tracking how many bytes have been read.

    Reading stops with :class:`concurrent.futures.CancelledError` once the
    wrapper has been cancelled, either through :meth:`cancel` or through the
    shared ``cancelled`` event given at construction.
    """

    def __init__(self, reader: BinaryIO, cancelled: threading.Event | None = None):
        self._reader = reader
        self._cancelled = cancelled if cancelled is not None else threading.Event()
        self._count = 0
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes from the wrapped reader."""
        if self._cancelled.is_set():
            raise CancelledError("read cancelled")
        data = self._reader.read(size)
        if data:
            with self._lock:
                self._count += len(data)
        return data

    def count(self) -> int:
        """Return the total number of bytes read so far."""
        with self._lock:
            return self._count

    def cancel(self) -> None:
        """Make every later read fail."""
        self._cancelled.set()