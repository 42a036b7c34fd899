from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .constants import FAR_MAGIC, FAR_REVISION, HASHINATE_SIZE, SHA1_SIZE
from .errors import ArchiveFormatError
from .hashutil import sha1
from .resource import ResourceType, Revision


# FAR4 save archive, big endian:
#   blobs | FAT entries | save key | hashinate[20] | count u32 | "FAR4"
# FAT entry: sha1[20], offset u32, size u32
# Save key:  revision head u32, branch_id u16, branch_revision u16, root_type u32, root_hash[20]
_FAT_STRUCT = struct.Struct(">20sII")
_KEY_STRUCT = struct.Struct(">IHHI20s")
_FOOTER_STRUCT = struct.Struct(">I4s")

_ZERO_SHA1 = b"\x00" * SHA1_SIZE
# Blobs start on word boundaries so the whole stream stays XXTEA-aligned
_ALIGN = 4


@dataclass
class SaveKey:
    revision: Revision
    root_type: ResourceType = ResourceType.INVALID
    root_hash: bytes = _ZERO_SHA1

    def pack(self) -> bytes:
        return _KEY_STRUCT.pack(
            self.revision.head,
            self.revision.branch_id,
            self.revision.branch_revision,
            int(self.root_type),
            self.root_hash,
        )

    @classmethod
    def unpack(cls, raw: bytes) -> "SaveKey":
        head, branch_id, branch_revision, root_type, root_hash = _KEY_STRUCT.unpack(raw)
        try:
            rtype = ResourceType(root_type)
        except ValueError:
            rtype = ResourceType.INVALID
        return cls(
            revision=Revision(head, branch_id, branch_revision),
            root_type=rtype,
            root_hash=root_hash,
        )


class Fat:
    """Directory entry: one blob in the archive, addressed by its SHA-1."""

    def __init__(self, archive: "SaveArchive", sha1: bytes, offset: int, size: int):
        self.archive = archive
        self.sha1 = sha1
        self.offset = offset
        self.size = size

    def extract(self) -> bytes:
        return bytes(self.archive.data[self.offset : self.offset + self.size])

    def __repr__(self) -> str:
        return f"Fat(sha1={self.sha1.hex()}, offset={self.offset}, size={self.size})"


class SaveArchive:
    def __init__(self, revision: Revision, far_revision: int = FAR_REVISION):
        if far_revision != FAR_REVISION:
            raise ValueError(f"Unsupported FAR revision: {far_revision}")
        self.key = SaveKey(revision=revision)
        self.data = bytearray()
        self.entries: List[Fat] = []
        self._by_hash: Dict[bytes, Fat] = {}

    @classmethod
    def parse(cls, data: bytes) -> "SaveArchive":
        """Parse a reassembled FAR4 stream (trailer included)."""
        min_size = _KEY_STRUCT.size + HASHINATE_SIZE + _FOOTER_STRUCT.size
        if len(data) < min_size:
            raise ArchiveFormatError(f"Archive too short ({len(data)} bytes)")
        count, magic = _FOOTER_STRUCT.unpack(data[-_FOOTER_STRUCT.size :])
        if magic != FAR_MAGIC:
            raise ArchiveFormatError("Bad archive magic")
        hashinate_off = len(data) - _FOOTER_STRUCT.size - HASHINATE_SIZE
        key_off = hashinate_off - _KEY_STRUCT.size
        fat_off = key_off - count * _FAT_STRUCT.size
        if fat_off < 0:
            raise ArchiveFormatError(f"FAT of {count} entries does not fit in archive")
        hashinate = data[hashinate_off : hashinate_off + HASHINATE_SIZE]
        if hashinate != _ZERO_SHA1 and sha1(data[:hashinate_off]) != hashinate:
            raise ArchiveFormatError("Archive hashinate mismatch")

        key = SaveKey.unpack(data[key_off : key_off + _KEY_STRUCT.size])
        archive = cls(key.revision)
        archive.key = key
        archive.data = bytearray(data[:fat_off])
        for i in range(count):
            pos = fat_off + i * _FAT_STRUCT.size
            digest, offset, size = _FAT_STRUCT.unpack(data[pos : pos + _FAT_STRUCT.size])
            if offset + size > fat_off:
                raise ArchiveFormatError(f"FAT entry {i} points outside the data region")
            archive._index(Fat(archive, digest, offset, size))
        return archive

    def _index(self, fat: Fat) -> None:
        self.entries.append(fat)
        self._by_hash.setdefault(fat.sha1, fat)

    def __iter__(self) -> Iterator[Fat]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, digest: bytes) -> bool:
        return digest in self._by_hash

    def extract(self, digest: bytes) -> Optional[bytes]:
        fat = self._by_hash.get(digest)
        if fat is None:
            return None
        return fat.extract()

    def add(self, blob: bytes) -> bytes:
        """Append a blob; returns its SHA-1. Duplicates are stored once."""
        digest = sha1(blob)
        if digest in self._by_hash:
            return digest
        self.data += b"\x00" * (-len(self.data) % _ALIGN)
        offset = len(self.data)
        self.data += blob
        self._index(Fat(self, digest, offset, len(blob)))
        return digest

    def build(self, hashinate: bool = True) -> bytes:
        out = io.BytesIO()
        out.write(self.data)
        out.write(b"\x00" * (-len(self.data) % _ALIGN))
        for fat in self.entries:
            out.write(_FAT_STRUCT.pack(fat.sha1, fat.offset, fat.size))
        out.write(self.key.pack())
        body = out.getvalue()
        digest = sha1(body) if hashinate else _ZERO_SHA1
        return body + digest + _FOOTER_STRUCT.pack(len(self.entries), FAR_MAGIC)
