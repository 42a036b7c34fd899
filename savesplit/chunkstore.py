from __future__ import annotations

import io
import os
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Tuple, Union

from .chunkcodec import ChunkCodec, split_trailer
from .constants import CHUNK_SIZE, TRAILER
from .errors import IOFailure, ReassemblyFailure


class ChunkStorage(Protocol):
    def exists(self, index: int) -> bool: ...

    def read(self, index: int) -> bytes: ...

    def write(self, index: int, data: bytes) -> None: ...


class DirectoryStorage:
    """Chunks stored as files named ``0``, ``1``, ``2``, ... in one folder."""

    def __init__(self, folder: Union[str, Path]):
        self.folder = Path(folder)

    def path_for(self, index: int) -> Path:
        return self.folder / str(index)

    def exists(self, index: int) -> bool:
        return self.path_for(index).is_file()

    def read(self, index: int) -> bytes:
        return self.path_for(index).read_bytes()

    def write(self, index: int, data: bytes) -> None:
        self.folder.mkdir(parents=True, exist_ok=True)
        with open(self.path_for(index), "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())

    def clear_stale(self, count: int) -> int:
        """Remove numbered chunk files from ``count`` upwards.

        Returns the number of files removed.
        """
        removed = 0
        index = count
        while self.exists(index):
            self.path_for(index).unlink()
            removed += 1
            index += 1
        return removed


class MemoryStorage:
    def __init__(self, chunks: Optional[Dict[int, bytes]] = None):
        self.chunks: Dict[int, bytes] = dict(chunks or {})
        self.reads = 0

    def exists(self, index: int) -> bool:
        return index in self.chunks

    def read(self, index: int) -> bytes:
        self.reads += 1
        return self.chunks[index]

    def write(self, index: int, data: bytes) -> None:
        self.chunks[index] = bytes(data)


def iter_chunks(storage: ChunkStorage) -> Iterator[Tuple[int, bytes]]:
    """Yield ``(index, raw)`` for chunks 0, 1, 2, ... up to the first gap."""
    index = 0
    while storage.exists(index):
        try:
            raw = storage.read(index)
        except OSError as exc:
            raise ReassemblyFailure(f"failed to read chunk {index}: {exc}") from exc
        yield index, raw
        index += 1


def reassemble(storage: ChunkStorage, codec: ChunkCodec) -> Optional[bytes]:
    """Decrypt and join a chunk sequence into one archive stream.

    The final chunk is recognised by its unencrypted FAR4 trailer, which is
    stripped before decryption and re-attached, unmodified, after it.

    Returns None when chunk 0 does not exist.
    """
    out = io.BytesIO()
    count = 0
    for _index, raw in iter_chunks(storage):
        encrypted, trailer = split_trailer(raw)
        out.write(codec.decrypt_chunk(encrypted))
        if trailer is not None:
            out.write(trailer)
        count += 1
    if count == 0:
        return None
    return out.getvalue()


def count_chunks(body_len: int, chunk_size: int = CHUNK_SIZE) -> int:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return max(1, -(-body_len // chunk_size))


def split(
    data: bytes,
    storage: ChunkStorage,
    codec: ChunkCodec,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Encrypt ``data`` into numbered chunks; returns the number written.

    A trailing FAR4 marker is carried over to the last chunk; a stream
    without one gets the canonical trailer.
    """
    body, trailer = split_trailer(data)
    if trailer is None:
        trailer = TRAILER
    total = count_chunks(len(body), chunk_size)
    for index in range(total):
        piece = body[index * chunk_size : (index + 1) * chunk_size]
        encrypted = codec.encrypt_chunk(piece)
        if index == total - 1:
            encrypted += trailer
        try:
            storage.write(index, encrypted)
        except OSError as exc:
            raise IOFailure(f"failed to write chunk {index}: {exc}") from exc
    return total
