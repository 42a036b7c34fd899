from __future__ import annotations

"""Corrected Block TEA (XXTEA) over big-endian 32-bit words.

Save chunks are enciphered in place: the ciphertext is exactly as long as the
plaintext, there is no IV and no padding. Buffers must therefore be a whole
number of words. Buffers shorter than two words are returned unchanged, which
is how the algorithm is defined for ``n < 2``.
"""

from typing import List

from .constants import XXTEA_KEY_SIZE
from .errors import ChunkCipherError


_DELTA = 0x9E3779B9
_MASK = 0xFFFFFFFF


def _to_words(data: bytes) -> List[int]:
    return [int.from_bytes(data[i : i + 4], "big") for i in range(0, len(data), 4)]


def _from_words(words: List[int]) -> bytes:
    return b"".join(w.to_bytes(4, "big") for w in words)


def _mx(total: int, y: int, z: int, p: int, e: int, key: List[int]) -> int:
    left = ((z >> 5) ^ ((y << 2) & _MASK)) + ((y >> 3) ^ ((z << 4) & _MASK))
    right = (total ^ y) + (key[(p & 3) ^ e] ^ z)
    return ((left & _MASK) ^ (right & _MASK)) & _MASK


def _encrypt_words(v: List[int], key: List[int]) -> None:
    n = len(v)
    rounds = 6 + 52 // n
    total = 0
    z = v[n - 1]
    for _ in range(rounds):
        total = (total + _DELTA) & _MASK
        e = (total >> 2) & 3
        for p in range(n):
            y = v[(p + 1) % n]
            v[p] = (v[p] + _mx(total, y, z, p, e, key)) & _MASK
            z = v[p]


def _decrypt_words(v: List[int], key: List[int]) -> None:
    n = len(v)
    rounds = 6 + 52 // n
    total = (rounds * _DELTA) & _MASK
    y = v[0]
    for _ in range(rounds):
        e = (total >> 2) & 3
        for p in range(n - 1, -1, -1):
            z = v[(p - 1) % n]
            v[p] = (v[p] - _mx(total, y, z, p, e, key)) & _MASK
            y = v[p]
        total = (total - _DELTA) & _MASK


class XXTEA:
    """Length-preserving XXTEA cipher with a fixed 128-bit key."""

    def __init__(self, key: bytes):
        if len(key) != XXTEA_KEY_SIZE:
            raise ValueError("Key must be 16 bytes for XXTEA")
        self._key = _to_words(key)

    def _check(self, data: bytes) -> None:
        if len(data) % 4:
            raise ChunkCipherError(f"XXTEA buffer length {len(data)} is not a multiple of 4")

    def encrypt(self, data: bytes) -> bytes:
        self._check(data)
        if len(data) < 8:
            return bytes(data)
        v = _to_words(data)
        _encrypt_words(v, self._key)
        return _from_words(v)

    def decrypt(self, data: bytes) -> bytes:
        self._check(data)
        if len(data) < 8:
            return bytes(data)
        v = _to_words(data)
        _decrypt_words(v, self._key)
        return _from_words(v)


def parse_key_hex(text: str) -> bytes:
    """Parse a 32-digit hex key; spaces, colons and a ``0x`` prefix are ignored."""
    cleaned = text.strip().lower().replace(" ", "").replace(":", "")
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    try:
        key = bytes.fromhex(cleaned)
    except ValueError:
        raise ValueError("XXTEA key must be hexadecimal") from None
    if len(key) != XXTEA_KEY_SIZE:
        raise ValueError(f"XXTEA key must be {XXTEA_KEY_SIZE} bytes ({XXTEA_KEY_SIZE * 2} hex digits)")
    return key


__all__ = [
    "XXTEA",
    "parse_key_hex",
]
