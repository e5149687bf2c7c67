import io
import threading
from concurrent.futures import CancelledError

import pytest

from cidn.read_count import ReadCount


def test_counts_bytes_across_reads():
    reader = ReadCount(io.BytesIO(b"abcdefghij"))
    assert reader.read(3) == b"abc"
    assert reader.count() == 3
    assert reader.read(4) == b"defg"
    assert reader.count() == 7


def test_read_to_end_counts_everything():
    data = b"x" * 1000
    reader = ReadCount(io.BytesIO(data))
    assert reader.read() == data
    assert reader.read(10) == b""
    assert reader.count() == len(data)


def test_cancel_stops_reads_and_keeps_count():
    reader = ReadCount(io.BytesIO(b"hello world"))
    reader.read(5)
    reader.cancel()
    with pytest.raises(CancelledError):
        reader.read(1)
    assert reader.count() == 5


def test_shared_event_cancels_all_readers():
    event = threading.Event()
    first = ReadCount(io.BytesIO(b"aa"), event)
    second = ReadCount(io.BytesIO(b"bb"), event)
    assert first.read(1) == b"a"
    event.set()
    with pytest.raises(CancelledError):
        first.read(1)
    with pytest.raises(CancelledError):
        second.read(1)
    assert second.count() == 0


def test_concurrent_counts_add_up():
    readers = [ReadCount(io.BytesIO(b"z" * 500)) for _ in range(4)]

    def drain(r):
        while r.read(7):
            pass

    threads = [threading.Thread(target=drain, args=(r,)) for r in readers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert [r.count() for r in readers] == [500] * 4