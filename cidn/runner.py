"""Worker that claims pending chunks and copies them from source to destinations."""

from __future__ import annotations

import logging
import os
import random
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Protocol

import requests

from .models import (
    CONDITION_TYPE_RETRYABLE,
    Chunk,
    ChunkHTTP,
    ChunkHTTPResponse,
    ChunkPhase,
    ChunkSpec,
    ChunkStatus,
    Condition,
    ConflictError,
    NotFoundError,
)
from .read_count import ReadCount
from .sha256state import update_sha256
from .versions import default_user_agent

log = logging.getLogger(__name__)

_COPY_SIZE = 64 * 1024
_NETWORK_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class ChunkClient(Protocol):
    """Access to stored chunks."""

    def list(self) -> list[Chunk]: ...

    def get(self, name: str) -> Chunk: ...

    def update_status(self, chunk: Chunk) -> Chunk: ...


class ChunkProcessError(Exception):
    """A failure while moving a chunk."""


def update_progress(status: ChunkStatus, spec: ChunkSpec, source: ReadCount, destinations) -> None:
    """Record source and destination byte counts and their average in ``status``."""
    source_progress = source.count()
    destination_progresses = [dr.count() for dr in destinations]
    total = source_progress + sum(destination_progresses)
    status.progress = total // (len(spec.destination) + 1)
    status.source_progress = source_progress
    status.destination_progresses = destination_progresses


def pending_chunks(chunks: Iterable[Chunk]) -> list[Chunk]:
    """Unclaimed pending chunks, highest priority first, then oldest first."""
    pending = [
        chunk.deep_copy()
        for chunk in chunks
        if chunk.status.handler_name == "" and chunk.status.phase == ChunkPhase.PENDING
    ]
    pending.sort(key=lambda c: (-c.spec.priority, c.meta.creation_timestamp))
    return pending


def _record_failure(status: ChunkStatus, kind: str, error: BaseException) -> None:
    status.phase = ChunkPhase.FAILED
    status.conditions.append(Condition(type=kind or "Process", message=str(error)))


class ChunkState:
    """The working copy of a chunk, changed only under a lock."""

    def __init__(self, chunk: Chunk):
        self._chunk = chunk.deep_copy()
        self._lock = threading.Lock()

    @property
    def chunk(self) -> Chunk:
        with self._lock:
            return self._chunk.deep_copy()

    def update(self, fn: Callable[[Chunk], Chunk]) -> None:
        """Apply ``fn`` to a copy; if it raises, mark the chunk failed instead."""
        with self._lock:
            try:
                result = fn(self._chunk.deep_copy())
            except Exception as exc:  # noqa: BLE001 - recorded as a failure condition
                _record_failure(self._chunk.status, "", exc)
            else:
                self._chunk = result.deep_copy()

    def fail(self, kind: str, error: BaseException) -> None:
        def apply(chunk: Chunk) -> Chunk:
            _record_failure(chunk.status, kind, error)
            return chunk

        self.update(apply)

    def fail_retryable(self, kind: str, error: BaseException) -> None:
        def apply(chunk: Chunk) -> Chunk:
            _record_failure(chunk.status, kind, error)
            spec, status = chunk.spec, chunk.status
            message = f"Retryable, Retry count: {status.retry}"
            if spec.chunks_number > 1:
                message += f", chunk: {spec.chunk_index}/{spec.chunks_number}"
            status.conditions.append(Condition(type=CONDITION_TYPE_RETRYABLE, message=message))
            return chunk

        self.update(apply)


def _unquote_etag(etag: str) -> str:
    if len(etag) >= 2 and etag[0] == etag[-1] == '"' and len(etag) > 2:
        return etag[1:-1]
    return etag


class ChunkRunner:
    """Claims chunks for one handler and executes them."""

    def __init__(
        self,
        handler_name: str,
        client: ChunkClient,
        session: requests.Session | None = None,
        progress_interval: float = 1.0,
        poll_interval: float = 1.0,
    ):
        self.handler_name = handler_name
        self.client = client
        self.session = session or requests.Session()
        self.progress_interval = progress_interval
        self.poll_interval = poll_interval
        self._signal = threading.Event()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None

    def notify(self) -> None:
        """Wake the worker: chunks may have been added or changed."""
        self._signal.set()

    def release(self) -> None:
        """Give back every pending or running chunk held by this handler."""
        for chunk in self.client.list():
            if chunk.status.handler_name != self.handler_name:
                continue
            if chunk.status.phase not in (ChunkPhase.PENDING, ChunkPhase.RUNNING):
                continue
            log.info("Releasing chunk %s (current phase: %s)", chunk.name, chunk.status.phase)
            self._release_one(chunk.deep_copy())

    def _release_one(self, chunk: Chunk) -> None:
        def reset(c: Chunk) -> Chunk:
            c.status.handler_name = ""
            c.status.phase = ChunkPhase.PENDING
            c.status.conditions = []
            return c

        try:
            self.client.update_status(reset(chunk))
        except ConflictError:
            try:
                latest = self.client.get(chunk.name)
                self.client.update_status(reset(latest))
            except Exception as exc:  # noqa: BLE001
                log.error("failed to release chunk %s: %s", chunk.name, exc)
        except Exception as exc:  # noqa: BLE001
            log.error("failed to release chunk %s: %s", chunk.name, exc)

    def acquire_pending(self) -> Chunk:
        """Claim the first pending chunk; raise LookupError when there is none."""
        for chunk in pending_chunks(self.client.list()):
            chunk.status.handler_name = self.handler_name
            chunk.status.phase = ChunkPhase.RUNNING
            try:
                return self.client.update_status(chunk)
            except ConflictError:
                continue
        raise LookupError("no pending chunks available")

    def process_next(self) -> bool:
        """Claim and process one chunk; return False once the runner is stopping."""
        if self._stop.is_set():
            return False
        try:
            chunk = self.acquire_pending()
        except Exception as exc:  # noqa: BLE001
            log.debug("failed to get pending chunk: %s", exc)
            while not self._signal.wait(0.1):
                if self._stop.is_set():
                    return False
            self._signal.clear()
            return not self._stop.is_set()
        if chunk.status.handler_name != self.handler_name:
            return True
        self.process(chunk.deep_copy())
        return True

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(target=self._run, daemon=True)
        self._worker.start()

    def _run(self) -> None:
        while self.process_next():
            pass

    def shutdown(self) -> None:
        self._stop.set()
        self._signal.set()
        if self._worker is not None:
            self._worker.join(timeout=5)
            self._worker = None
        self.release()

    # --- processing -------------------------------------------------------

    def _push(self, state: ChunkState, cancelled: threading.Event, counters) -> None:
        def fn(chunk: Chunk) -> Chunk:
            source, destinations = counters
            if source is not None:
                update_progress(chunk.status, chunk.spec, source, destinations)
            try:
                return self.client.update_status(chunk)
            except ConflictError:
                pass
            except Exception as exc:  # noqa: BLE001
                log.warning("Failed to update chunk %s: %s", chunk.name, exc)
                return chunk
            try:
                latest = self.client.get(chunk.name)
            except NotFoundError:
                cancelled.set()
                log.warning("Chunk %s not found, may have been deleted", chunk.name)
                return chunk
            except Exception as exc:  # noqa: BLE001
                log.warning("Failed to get chunk %s: %s", chunk.name, exc)
                return chunk
            if latest.status.handler_name != self.handler_name:
                cancelled.set()
                log.warning("Chunk %s has been acquired by another handler", chunk.name)
                return chunk
            latest.status = chunk.status
            try:
                return self.client.update_status(latest)
            except Exception as exc:  # noqa: BLE001
                log.warning("Failed to update chunk %s after retry: %s", chunk.name, exc)
                return chunk

        state.update(fn)

    def _request(self, http: ChunkHTTP, body=None, content_length: int = 0) -> requests.Response:
        headers = {"Accept": "*/*", "User-Agent": default_user_agent()}
        if body is not None:
            headers["Content-Length"] = str(content_length)
        headers.update(http.request.headers)
        return self.session.request(
            http.request.method or "GET", http.request.url, headers=headers, data=body, stream=True
        )

    def _source(self, chunk: Chunk, state: ChunkState) -> tuple[requests.Response, int] | None:
        source = chunk.spec.source
        try:
            resp = self._request(source)
        except _NETWORK_ERRORS as exc:
            state.fail_retryable("", exc)
            return None
        except requests.RequestException as exc:
            state.fail("", exc)
            return None

        headers = {k.lower(): v for k, v in resp.headers.items()}

        def record(c: Chunk) -> Chunk:
            c.status.source_response = ChunkHTTPResponse(status_code=resp.status_code, headers=headers)
            return c

        state.update(record)

        def reject(kind: str, message: str) -> None:
            state.fail(kind, ChunkProcessError(message))
            resp.close()

        want = source.response.status_code
        if want:
            if resp.status_code != want:
                reject("", f"unexpected status code: got {resp.status_code}, want {want}")
                return None
        elif resp.status_code >= 300:
            reject("", f"source returned error status code: {resp.status_code}")
            return None

        try:
            length = int(resp.headers.get("Content-Length", "-1"))
        except ValueError:
            length = -1
        total = chunk.spec.total
        if length > 0 and total > 0 and length != total:
            reject("ContentLengthMismatch", f"content length mismatch: got {length}, want {total}")
            return None

        for key, value in source.response.headers.items():
            got = resp.headers.get(key, "")
            if got != value:
                reject("HeaderMismatch", f"header {key} mismatch: got {got}, want {value}")
                return None
        return resp, length

    def _destination(self, dest: ChunkHTTP, reader: ReadCount, content_length: int) -> str:
        try:
            resp = self._request(dest, reader, content_length)
        except _NETWORK_ERRORS:
            resp = self._request(dest, reader, content_length)
        with resp:
            want = dest.response.status_code
            if want:
                if resp.status_code != want:
                    raise ChunkProcessError(
                        f"unexpected status code from destination: got {resp.status_code}, want {want}"
                    )
            elif resp.status_code >= 300:
                raise ChunkProcessError(
                    f"destination returned error status code: {resp.status_code}, body: {resp.text}"
                )
            etag = _unquote_etag(resp.headers.get("ETag", ""))
        if not etag:
            raise ChunkProcessError("empty ETag received from destination")
        return etag

    def process(self, chunk: Chunk) -> Chunk:
        """Run one claimed chunk to completion and return its final state."""
        log.info("Processing chunk %s", chunk.name)
        state = ChunkState(chunk)
        cancelled = threading.Event()
        counters: list = [None, []]
        stop = threading.Event()

        def progress_loop() -> None:
            while not stop.wait(self.progress_interval + random.random() * 0.1):
                if cancelled.is_set():
                    return
                self._push(state, cancelled, counters)

        updater = threading.Thread(target=progress_loop, daemon=True)
        updater.start()
        path = None
        try:
            path = self._transfer(chunk, state, cancelled, counters)
        finally:
            stop.set()
            updater.join()
            if not cancelled.is_set():
                self._push(state, cancelled, counters)
            if path is not None:
                os.remove(path)
            log.info("Finish processing chunk %s", chunk.name)
        return state.chunk

    def _transfer(self, chunk, state, cancelled, counters) -> str | None:
        result = self._source(chunk, state)
        if result is None:
            return None
        resp, content_length = result
        spec = chunk.spec
        if content_length <= 0 and spec.total > 0:
            content_length = spec.total

        if not spec.destination:
            with resp:
                def finish(c: Chunk) -> Chunk:
                    if spec.inline_response_body:
                        c.status.response_body = resp.content
                    c.status.phase = ChunkPhase.SUCCEEDED
                    return c

                state.update(finish)
            return None

        fd, path = tempfile.mkstemp(prefix="cidn-chunk-")
        source_reader = ReadCount(resp.raw, cancelled)
        active = [(i, d) for i, d in enumerate(spec.destination) if d.request.method]
        readers = {i: ReadCount(open(path, "rb"), cancelled) for i, _ in active}
        counters[0], counters[1] = source_reader, list(readers.values())
        try:
            with os.fdopen(fd, "wb") as out, resp:
                while data := source_reader.read(_COPY_SIZE):
                    out.write(data)
            if content_length <= 0:
                content_length = source_reader.count()
            etags = [""] * len(spec.destination)
            with ThreadPoolExecutor(max_workers=max(len(active), 1)) as pool:
                futures = {
                    i: pool.submit(self._destination, dest, readers[i], content_length)
                    for i, dest in active
                }
                for i, future in futures.items():
                    etags[i] = future.result()
        except Exception as exc:  # noqa: BLE001
            state.fail("", exc)
            return path
        finally:
            for reader in readers.values():
                reader._reader.close()

        self._finalize(chunk, state, path, etags, cancelled)
        return path

    def _finalize(self, chunk, state, path, etags, cancelled) -> None:
        previous = chunk.spec.sha256_partial_previous_name

        def complete(partial: bytes | None) -> None:
            def apply(c: Chunk) -> Chunk:
                if previous:
                    with open(path, "rb") as stream:
                        c.status.sha256, c.status.sha256_partial = update_sha256(
                            c.spec.sha256, partial, stream
                        )
                c.status.etags = list(etags)
                c.status.phase = ChunkPhase.SUCCEEDED
                return c

            state.update(apply)

        if previous in ("", "-"):
            complete(None)
            return

        first = True
        while first or not cancelled.wait(self.poll_interval):
            first = False
            try:
                pchunk = self.client.get(previous)
            except NotFoundError:
                continue
            except Exception as exc:  # noqa: BLE001
                state.fail("", exc)
                return
            if pchunk.status.phase != ChunkPhase.SUCCEEDED:
                continue
            if not pchunk.status.sha256_partial:
                state.fail(
                    "MissingSha256PartialData",
                    ChunkProcessError(f'partial chunk "{previous}" has no sha256 partial data'),
                )
                return
            complete(pchunk.status.sha256_partial)
            return


class Runner:
    """Top-level runner owning the chunk worker."""

    def __init__(self, handler_name: str, client: ChunkClient, session: requests.Session | None = None):
        self.chunk = ChunkRunner(handler_name, client, session)

    def start(self) -> None:
        self.chunk.start()

    def shutdown(self) -> None:
        self.chunk.shutdown()