from datetime import datetime, timezone

from cidn.models import (
    Blob,
    BlobDestination,
    BlobPhase,
    BlobSource,
    Bearer,
    BearerPhase,
    Chunk,
    ChunkHTTP,
    ChunkHTTPRequest,
    ChunkPhase,
    Condition,
    FieldError,
    ObjectMeta,
)


def test_chunk_deep_copy_is_independent():
    chunk = Chunk(meta=ObjectMeta(name="c1", labels={"a": "b"}))
    chunk.spec.destination.append(ChunkHTTP(request=ChunkHTTPRequest(method="PUT", url="http://example.com/x")))
    chunk.status.conditions.append(Condition(type="Process", message="boom"))
    copied = chunk.deep_copy()
    assert copied == chunk
    copied.meta.labels["a"] = "changed"
    copied.spec.destination[0].request.url = "http://example.com/y"
    copied.status.conditions.clear()
    assert chunk.meta.labels["a"] == "b"
    assert chunk.spec.destination[0].request.url == "http://example.com/x"
    assert len(chunk.status.conditions) == 1


def test_blob_deep_copy_is_independent():
    blob = Blob(meta=ObjectMeta(name="b1"))
    blob.spec.source.append(BlobSource(url="http://example.com/a"))
    blob.spec.destination.append(BlobDestination(name="d", path="p"))
    copied = blob.deep_copy()
    assert copied == blob
    copied.spec.source[0].url = "http://example.com/b"
    assert blob.spec.source[0].url == "http://example.com/a"


def test_bearer_deep_copy_is_independent():
    bearer = Bearer(meta=ObjectMeta(name="x"), spec={"k": ["v"]})
    copied = bearer.deep_copy()
    copied.spec["k"].append("w")
    assert bearer.spec == {"k": ["v"]}


def test_name_property_follows_meta():
    assert Chunk(meta=ObjectMeta(name="abc")).name == "abc"
    assert Blob(meta=ObjectMeta(name="def")).name == "def"


def test_phases_parse_from_values():
    assert ChunkPhase("Pending") is ChunkPhase.PENDING
    assert BlobPhase("Failed") is BlobPhase.FAILED
    assert str(BearerPhase.SUCCEEDED) == BearerPhase.SUCCEEDED.value


def test_default_status_has_no_phase():
    assert Chunk().status.phase is None
    assert Blob().status.phase is None


def test_creation_timestamp_is_timezone_aware():
    meta = ObjectMeta()
    assert meta.creation_timestamp.tzinfo is not None
    assert meta.creation_timestamp <= datetime.now(timezone.utc)


def test_field_error_constructors():
    req = FieldError.required("spec.source", "missing")
    forb = FieldError.forbidden("spec.destination", "immutable")
    assert req.kind == "Required"
    assert req.path == "spec.source"
    assert forb.kind == "Forbidden"
    assert forb.detail == "immutable"
    assert "spec.destination" in str(forb)