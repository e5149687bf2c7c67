"""SHA-256 whose intermediate state can be saved and resumed."""

from __future__ import annotations

import struct
from typing import BinaryIO

_MASK = 0xFFFFFFFF
_BLOCK = 64
_MAGIC = b"sha\x03"
_STATE_SIZE = len(_MAGIC) + 8 * 4 + _BLOCK + 8

_H0 = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)

_K = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208, 0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)

_READ_SIZE = 64 * 1024


def _compress(state: tuple[int, ...], block: bytes) -> tuple[int, ...]:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 64):
        x = w[i - 15]
        y = w[i - 2]
        s0 = ((x >> 7 | x << 25) ^ (x >> 18 | x << 14) ^ (x >> 3)) & _MASK
        s1 = ((y >> 17 | y << 15) ^ (y >> 19 | y << 13) ^ (y >> 10)) & _MASK
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & _MASK)

    a, b, c, d, e, f, g, h = state
    for k, wi in zip(_K, w):
        big_s1 = ((e >> 6 | e << 26) ^ (e >> 11 | e << 21) ^ (e >> 25 | e << 7)) & _MASK
        ch = (e & f) ^ (~e & g)
        t1 = (h + big_s1 + ch + k + wi) & _MASK
        big_s0 = ((a >> 2 | a << 30) ^ (a >> 13 | a << 19) ^ (a >> 22 | a << 10)) & _MASK
        maj = (a & b) ^ (a & c) ^ (b & c)
        t2 = (big_s0 + maj) & _MASK
        h, g, f, e, d, c, b, a = g, f, e, (d + t1) & _MASK, c, b, a, (t1 + t2) & _MASK

    return tuple((x + y) & _MASK for x, y in zip(state, (a, b, c, d, e, f, g, h)))


class ResumableSha256:
    """SHA-256 hash with a binary state format for saving and resuming."""

    digest_size = 32
    block_size = _BLOCK

    def __init__(self, data: bytes = b""):
        self._state: tuple[int, ...] = _H0
        self._buffer = b""
        self._length = 0
        if data:
            self.update(data)

    def update(self, data: bytes) -> None:
        """Feed more bytes into the hash."""
        data = bytes(data)
        self._length += len(data)
        buf = self._buffer + data
        full = len(buf) - len(buf) % _BLOCK
        state = self._state
        for offset in range(0, full, _BLOCK):
            state = _compress(state, buf[offset : offset + _BLOCK])
        self._state = state
        self._buffer = buf[full:]

    def copy(self) -> ResumableSha256:
        other = ResumableSha256()
        other._state = self._state
        other._buffer = self._buffer
        other._length = self._length
        return other

    def digest(self) -> bytes:
        """Return the digest of everything fed so far; the hash stays usable."""
        bit_length = (self._length * 8) & 0xFFFFFFFFFFFFFFFF
        tail = self._buffer + b"\x80"
        tail += b"\x00" * ((56 - len(tail)) % _BLOCK)
        tail += struct.pack(">Q", bit_length)
        state = self._state
        for offset in range(0, len(tail), _BLOCK):
            state = _compress(state, tail[offset : offset + _BLOCK])
        return struct.pack(">8I", *state)

    def hexdigest(self) -> str:
        return self.digest().hex()

    def marshal(self) -> bytes:
        """Serialise the running state."""
        return b"".join(
            (
                _MAGIC,
                struct.pack(">8I", *self._state),
                self._buffer.ljust(_BLOCK, b"\x00"),
                struct.pack(">Q", self._length),
            )
        )

    @classmethod
    def unmarshal(cls, data: bytes) -> ResumableSha256:
        """Restore a hash from state produced by :meth:`marshal`."""
        data = bytes(data)
        if not data.startswith(_MAGIC):
            raise ValueError("sha256: invalid hash state identifier")
        if len(data) != _STATE_SIZE:
            raise ValueError("sha256: invalid hash state size")
        offset = len(_MAGIC)
        state = struct.unpack(">8I", data[offset : offset + 32])
        offset += 32
        block = data[offset : offset + _BLOCK]
        offset += _BLOCK
        (length,) = struct.unpack(">Q", data[offset:])
        restored = cls()
        restored._state = state
        restored._length = length
        restored._buffer = block[: length % _BLOCK]
        return restored


def update_sha256(expected: str, partial: bytes | None, stream: BinaryIO) -> tuple[str, bytes]:
    """Continue a hash from ``partial`` over ``stream``.

    With no ``expected`` value the saved state is returned so a later chunk can
    continue it: ``("", state)``. Otherwise the final digest is checked and
    ``(expected, b"")`` is returned; a mismatch raises ``ValueError``.
    """
    hasher = ResumableSha256.unmarshal(partial) if partial else ResumableSha256()
    while True:
        data = stream.read(_READ_SIZE)
        if not data:
            break
        hasher.update(data)

    if not expected:
        return "", hasher.marshal()

    got = hasher.hexdigest()
    if got != expected:
        raise ValueError(f"sha256 mismatch: expected {expected}, got {got}")
    return expected, b""