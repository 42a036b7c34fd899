from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Protocol

from .errors import CodecFailure
from .resource import ResourceType, SlotList, decode_slot_list, sniff_resource_type


class DirectoryEntry(Protocol):
    sha1: bytes

    def extract(self) -> bytes: ...


class RootKey(Protocol):
    root_hash: bytes
    root_type: ResourceType


class ResolvableArchive(Protocol):
    """What the resolver needs from an opened archive (see SaveArchive)."""

    key: RootKey

    def extract(self, digest: bytes) -> Optional[bytes]: ...

    def __iter__(self) -> Iterator[DirectoryEntry]: ...


@dataclass
class ResolvedLevel:
    sha1: bytes
    data: bytes
    source: str  # "slot_list", "root" or "scan"


def _from_slot_list(archive, root_hash: bytes, decode_slots: Callable[[bytes], SlotList]) -> Optional[ResolvedLevel]:
    slot_data = archive.extract(root_hash)
    if slot_data is None:
        return None
    try:
        slot_list = decode_slots(slot_data)
    except CodecFailure as exc:
        print(f"Warning: root slot list is malformed ({exc}); scanning archive", file=sys.stderr)
        return None
    if not slot_list.slots:
        return None
    root = slot_list.slots[0].root
    if root is None or root.is_guid() or root.sha1 is None:
        return None
    data = archive.extract(root.sha1)
    if data is None:
        return None
    return ResolvedLevel(sha1=root.sha1, data=data, source="slot_list")


def scan_for_level(archive) -> Optional[ResolvedLevel]:
    """Return the first directory entry whose content sniffs as a level."""
    for fat in archive:
        data = fat.extract()
        if sniff_resource_type(data) is ResourceType.LEVEL:
            return ResolvedLevel(sha1=fat.sha1, data=data, source="scan")
    return None


def resolve_level(
    archive: ResolvableArchive,
    *,
    decode_slots: Callable[[bytes], SlotList] = decode_slot_list,
) -> Optional[ResolvedLevel]:
    """Locate the level payload an archive's root key points at.

    Resolution order, first hit wins:

    1.  SLOT_LIST root: the first slot's hash reference (GUID references
        cannot be resolved to archive content).
    2.  LEVEL root: the root blob itself.
    3.  Any other root type has no declared path.

    When none of these yields bytes, every directory entry is extracted and
    sniffed in directory order, and the first LEVEL is returned. Returns None
    when the archive holds no level at all.
    """
    root_hash = archive.key.root_hash
    root_type = archive.key.root_type

    found: Optional[ResolvedLevel] = None
    if root_type == ResourceType.SLOT_LIST:
        found = _from_slot_list(archive, root_hash, decode_slots)
    elif root_type == ResourceType.LEVEL:
        data = archive.extract(root_hash)
        if data is not None:
            found = ResolvedLevel(sha1=root_hash, data=data, source="root")
    else:
        found = None

    if found is None:
        found = scan_for_level(archive)
    return found
