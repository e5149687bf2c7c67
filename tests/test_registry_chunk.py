from datetime import datetime, timedelta, timezone

import pytest

from cidn.models import (
    Blob,
    Chunk,
    ChunkHTTP,
    ChunkHTTPRequest,
    ChunkPhase,
    ChunkSpec,
    ChunkStatus,
    Condition,
    ObjectMeta,
)
from cidn.registry_chunk import ChunkStatusStrategy, ChunkStrategy, get_attrs
from cidn.tables import IncludeObject, TableOptions, format_age, format_ibytes

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_chunk(name="c1", url="http://example.com/file", **status):
    return Chunk(
        meta=ObjectMeta(name=name, labels={"app": "x"}, creation_timestamp=NOW - timedelta(seconds=65)),
        spec=ChunkSpec(source=ChunkHTTP(request=ChunkHTTPRequest(method="GET", url=url))),
        status=ChunkStatus(**status),
    )


@pytest.fixture
def strategy():
    return ChunkStrategy(clock=lambda: NOW)


def test_short_names(strategy):
    assert strategy.short_names() == ["ck"]


def test_validate_requires_source_url(strategy):
    errors = strategy.validate(make_chunk(url=""))
    assert [(e.kind, e.path) for e in errors] == [("Required", "spec.source.request.url")]
    assert errors[0].detail == "source URL must be specified"


def test_validate_accepts_url(strategy):
    assert strategy.validate(make_chunk()) == []


def test_validate_update_spec_immutable(strategy):
    old = make_chunk()
    same = old.deep_copy()
    same.status.progress = 10
    assert strategy.validate_update(same, old) == []
    changed = old.deep_copy()
    changed.spec.total = 100
    errors = strategy.validate_update(changed, old)
    assert [(e.kind, e.path, e.detail) for e in errors] == [("Forbidden", "spec", "spec is immutable")]


def test_canonicalize_defaults_phase(strategy):
    chunk = make_chunk()
    strategy.canonicalize(chunk)
    assert chunk.status.phase is ChunkPhase.PENDING
    running = make_chunk(phase=ChunkPhase.RUNNING)
    strategy.canonicalize(running)
    assert running.status.phase is ChunkPhase.RUNNING


def test_prepare_for_update_keeps_status(strategy):
    old = make_chunk(handler_name="h1", progress=5)
    new = make_chunk(handler_name="h2", progress=9)
    new.spec.total = 42
    strategy.prepare_for_update(new, old)
    assert new.status == old.status
    assert new.spec.total == 42
    new.status.conditions.append(Condition(type="X"))
    assert old.status.conditions == []


def test_status_strategy_keeps_spec():
    status_strategy = ChunkStatusStrategy(clock=lambda: NOW)
    old = make_chunk()
    new = make_chunk(url="http://example.com/other", handler_name="h2")
    status_strategy.prepare_for_update(new, old)
    assert new.spec == old.spec
    assert new.status.handler_name == "h2"


def test_get_attrs():
    labels, fields = get_attrs(make_chunk(name="abc"))
    assert labels == {"app": "x"}
    assert fields == {"metadata.name": "abc"}
    with pytest.raises(TypeError):
        get_attrs(Blob())


def test_table_headers(strategy):
    table = strategy.convert_to_table(make_chunk())
    assert [c.name for c in table.column_definitions] == ["Name", "Handler", "Phase", "Progress", "Age"]
    no_headers = strategy.convert_to_table(make_chunk(), TableOptions(no_headers=True))
    assert no_headers.column_definitions == []
    assert len(no_headers.rows) == 1


def test_table_row_cells(strategy):
    chunk = make_chunk(handler_name="worker", phase=ChunkPhase.RUNNING)
    row = strategy.convert_to_table(chunk).rows[0]
    assert row.cells == ["c1", "worker", "Running", "<none>", format_age(65)]
    assert row.object == chunk.meta


def test_table_failed_phase_lists_conditions(strategy):
    chunk = make_chunk(
        phase=ChunkPhase.FAILED,
        conditions=[Condition(type="Process"), Condition(type="Retryable")],
    )
    assert strategy.convert_to_table(chunk).rows[0].cells[2] == "Failed(Process,Retryable)"


def test_table_progress_forms(strategy):
    done = make_chunk(progress=2048)
    done.spec.total = 2048
    assert strategy.convert_to_table(done).rows[0].cells[3] == format_ibytes(2048)
    partial = make_chunk(progress=10)
    partial.spec.total = 2048
    assert strategy.convert_to_table(partial).rows[0].cells[3] == (
        f"{format_ibytes(10)}/{format_ibytes(2048)}"
    )
    unknown = make_chunk(progress=300)
    unknown.spec.total = -1
    assert strategy.convert_to_table(unknown).rows[0].cells[3] == format_ibytes(300)


def test_table_list_and_include_object(strategy):
    chunks = [make_chunk(name="a"), make_chunk(name="b")]
    table = strategy.convert_to_table(chunks, TableOptions(include_object=IncludeObject.OBJECT))
    assert [row.cells[0] for row in table.rows] == ["a", "b"]
    assert table.rows[1].object is chunks[1]
    none_table = strategy.convert_to_table(chunks, TableOptions(include_object=IncludeObject.NONE))
    assert none_table.rows[0].object is None


def test_table_rejects_other_types(strategy):
    with pytest.raises(TypeError):
        strategy.convert_to_table([make_chunk(), Blob()])