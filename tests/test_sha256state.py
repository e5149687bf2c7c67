import hashlib
import io

import pytest

from cidn.sha256state import ResumableSha256, update_sha256


@pytest.mark.parametrize("length", [0, 1, 55, 56, 63, 64, 65, 127, 128, 1000])
def test_digest_matches_hashlib(length):
    data = bytes(i % 251 for i in range(length))
    assert ResumableSha256(data).hexdigest() == hashlib.sha256(data).hexdigest()


def test_known_value_abc():
    assert ResumableSha256(b"abc").hexdigest() == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_incremental_update_and_digest_is_repeatable():
    h = ResumableSha256()
    for piece in (b"hello ", b"", b"wor", b"ld" * 50):
        h.update(piece)
    expected = hashlib.sha256(b"hello world" + b"ld" * 49).digest()
    assert h.digest() == expected
    assert h.digest() == expected


def test_marshal_layout():
    state = ResumableSha256(b"abc").marshal()
    assert len(state) == 108
    assert state[:4] == b"sha\x03"
    assert state[36:39] == b"abc"
    assert state[-8:] == (3).to_bytes(8, "big")


def test_initial_state_words():
    state = ResumableSha256().marshal()
    assert state[4:8] == bytes.fromhex("6a09e667")


@pytest.mark.parametrize("split", [0, 10, 64, 100, 300])
def test_resume_round_trip(split):
    data = bytes(range(256)) * 2
    h = ResumableSha256(data[:split])
    resumed = ResumableSha256.unmarshal(h.marshal())
    assert resumed.marshal() == h.marshal()
    resumed.update(data[split:])
    assert resumed.hexdigest() == hashlib.sha256(data).hexdigest()


def test_unmarshal_rejects_bad_identifier():
    state = bytearray(ResumableSha256(b"x").marshal())
    state[0:4] = b"md5\x01"
    with pytest.raises(ValueError, match="identifier"):
        ResumableSha256.unmarshal(bytes(state))


def test_unmarshal_rejects_bad_size():
    with pytest.raises(ValueError, match="size"):
        ResumableSha256.unmarshal(ResumableSha256(b"x").marshal()[:-1])


def test_update_sha256_chain_of_parts():
    parts = [b"a" * 70000, b"b" * 333, b"c" * 10]
    whole = b"".join(parts)
    expected = hashlib.sha256(whole).hexdigest()

    got, partial = update_sha256("", None, io.BytesIO(parts[0]))
    assert got == ""
    assert ResumableSha256.unmarshal(partial).hexdigest() == hashlib.sha256(parts[0]).hexdigest()

    got, partial = update_sha256("", partial, io.BytesIO(parts[1]))
    assert got == ""

    got, final_partial = update_sha256(expected, partial, io.BytesIO(parts[2]))
    assert got == expected
    assert final_partial == b""


def test_update_sha256_single_part_verification():
    data = b"payload"
    expected = hashlib.sha256(data).hexdigest()
    assert update_sha256(expected, b"", io.BytesIO(data)) == (expected, b"")


def test_update_sha256_mismatch():
    wrong = hashlib.sha256(b"other").hexdigest()
    with pytest.raises(ValueError, match="sha256 mismatch"):
        update_sha256(wrong, None, io.BytesIO(b"data"))


def test_update_sha256_bad_partial():
    with pytest.raises(ValueError):
        update_sha256("", b"garbage", io.BytesIO(b"data"))