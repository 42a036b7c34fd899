from __future__ import annotations

from Cryptodome.Hash import SHA1

from .constants import SHA1_SIZE


def sha1(data: bytes) -> bytes:
    return SHA1.new(data).digest()


def parse_sha1_hex(text: str) -> bytes:
    """Parse a 40-digit hex digest, raising ValueError on anything else."""
    digest = bytes.fromhex(text.strip())
    if len(digest) != SHA1_SIZE:
        raise ValueError(f"SHA-1 digest must be {SHA1_SIZE} bytes")
    return digest
