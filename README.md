# cidn

Building blocks for moving large blobs between HTTP endpoints in chunks.

## What is in the package

- **Resource models** (`cidn.models`): `Blob`, `Chunk`, `Bearer` and `Multipart`
  dataclasses with their specs and statuses, the phase enums `BlobPhase`,
  `ChunkPhase` and `BearerPhase`, `Condition`, and the errors `ConflictError`,
  `NotFoundError` and `FieldError` (built with `FieldError.required` and
  `FieldError.forbidden`).
- **Registry strategies**: `BlobStrategy` / `BlobStatusStrategy`
  (`cidn.registry_blob`), `ChunkStrategy` / `ChunkStatusStrategy`
  (`cidn.registry_chunk`), `BearerStrategy` / `BearerStatusStrategy`
  (`cidn.registry_bearer`) and `MultipartStrategy` (`cidn.registry_multipart`).
  They provide `validate`, `validate_update`, `prepare_for_update`,
  `canonicalize` (where the resource has one) and `convert_to_table`.
  Each module also has `get_attrs`, which returns an object's labels and its
  `metadata.name` field. `BlobStrategy.canonicalize` sets the phase to pending
  when unset and, once `status.total` is known, works out `chunks_number` and
  `chunk_size`.
- **Tables** (`cidn.tables`): `build_table`, `format_ibytes` (IEC sizes such as
  `1.5 KiB`), `format_age` (such as `1h2m3s`) and `failed_phase_label`.
- **Chunk runner** (`cidn.runner`): `ChunkRunner` claims pending chunks,
  downloads each from its source, uploads it to every destination that has a
  request method and records progress, ETags and SHA-256 state. `Runner` wraps
  it for `start` and `shutdown`. `pending_chunks` and `update_progress` are
  available on their own.
- **Resumable SHA-256** (`cidn.sha256state`): `ResumableSha256` can be
  marshalled after one chunk and resumed for the next. `update_sha256` either
  checks the final digest or returns the intermediate state.
- **Byte counting** (`cidn.read_count`): `ReadCount` wraps a binary stream,
  counts the bytes read through it and can be cancelled.
- **Web UI events** (`cidn.webui`): `EventAggregator` turns blob add, update and
  delete notifications into Server-Sent `Event`s. Updates that only change
  progress are held back until `flush`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Chunk layout for a blob:

```python
from cidn.models import Blob
from cidn.registry_blob import BlobStrategy, chunk_size_for, chunks_number_for

chunks_number_for(10 * 1024 * 1024, 4 * 1024 * 1024)   # 3
chunk_size_for(12 * 1024 * 1024, 3)                    # 4194304

blob = Blob()
blob.status.total = 300_000_000
blob.status.accept_ranges = True
blob.spec.minimum_chunk_size = 100_000_000
BlobStrategy().canonicalize(blob)
blob.spec.chunks_number, blob.spec.chunk_size          # (3, 100000000)
```

Hashing across chunks:

```python
import hashlib
import io

from cidn.sha256state import update_sha256

_, partial = update_sha256("", None, io.BytesIO(b"hello "))
expected = hashlib.sha256(b"hello world").hexdigest()
digest, _ = update_sha256(expected, partial, io.BytesIO(b"world"))
# a wrong expected digest raises ValueError
```

Blob events for the web UI:

```python
import io

from cidn.models import Blob, ObjectMeta
from cidn.webui import EventAggregator

feed = EventAggregator()
feed.on_add(Blob(meta=ObjectMeta(name="demo", uid="uid-1")))
out = io.BytesIO()
for event in feed.take_immediate():
    event.write_to(out)
# out holds b"id: uid-1\nevent: ADD\ndata: {...}\n\n"
```

Running chunks:

```python
from cidn.runner import Runner

runner = Runner("worker-1", client)   # client: list(), get(name), update_status(chunk)
runner.start()
runner.chunk.notify()                 # wake the worker after chunks change
...
runner.shutdown()                     # stops the worker and releases held chunks
```

The client's `update_status` raises `ConflictError` when the chunk changed in
the meantime, and `get` raises `NotFoundError` for a missing chunk.

## What the package does not do

- It has no storage for resources and no API server: the strategies only
  validate, canonicalise and tabulate objects handed to them, and the runner
  needs a client object supplied by the caller.
- It serves no web pages and runs no HTTP server: `cidn.webui` only builds and
  writes events; sending them to browsers is up to the caller.
- It installs no command-line program.