from __future__ import annotations

from typing import Optional, Protocol, Tuple

from .constants import TRAILER, TRAILER_SIZE
from .xxtea import XXTEA


class BlockCipher(Protocol):
    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


def has_trailer(data: bytes) -> bool:
    return len(data) >= TRAILER_SIZE and data[-TRAILER_SIZE:] == TRAILER


def split_trailer(data: bytes) -> Tuple[bytes, Optional[bytes]]:
    """Return ``(body, trailer)``; trailer is None unless the data ends in FAR4.

    Any buffer ending in the magic is taken to carry a trailer, including
    payloads that only end in those bytes by coincidence.
    """
    if has_trailer(data):
        return data[:-TRAILER_SIZE], data[-TRAILER_SIZE:]
    return data, None


class ChunkCodec:
    """Per-chunk cipher transforms. Trailer handling is left to the caller."""

    def __init__(self, cipher: BlockCipher):
        self.cipher = cipher

    @classmethod
    def from_key(cls, key: bytes) -> "ChunkCodec":
        return cls(XXTEA(key))

    def decrypt_chunk(self, data: bytes) -> bytes:
        return self.cipher.decrypt(data)

    def encrypt_chunk(self, data: bytes) -> bytes:
        return self.cipher.encrypt(data)
