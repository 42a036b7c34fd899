from __future__ import annotations

import base64
import json as _json
import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional

from .constants import (
    METHOD_BINARY,
    METHOD_ENCRYPTED,
    METHOD_RAW,
    METHOD_TEXT,
    REF_GUID,
    REF_HASH,
    REF_NONE,
    REVISION_PRESETS,
    SHA1_SIZE,
)
from .errors import CodecFailure
from .hashutil import parse_sha1_hex, sha1


# Binary resource header after the 4-byte magic: head u32, branch_id u16, branch_revision u16
_REVISION_STRUCT = struct.Struct(">IHH")
_HEADER_SIZE = 4 + _REVISION_STRUCT.size
_SLOT_STRUCT = struct.Struct(">BIB")


class ResourceType(IntEnum):
    INVALID = 0
    TEXTURE = 1
    MESH = 2
    LEVEL = 9
    PLAN = 17
    SLOT_LIST = 29


_MAGIC_BY_TYPE = {
    ResourceType.TEXTURE: b"TEX",
    ResourceType.MESH: b"MSH",
    ResourceType.LEVEL: b"LVL",
    ResourceType.PLAN: b"PLN",
    ResourceType.SLOT_LIST: b"SLT",
}
_TYPE_BY_MAGIC = {magic: rtype for rtype, magic in _MAGIC_BY_TYPE.items()}


class SerializationMethod(Enum):
    BINARY = METHOD_BINARY
    TEXT = METHOD_TEXT
    ENCRYPTED = METHOD_ENCRYPTED
    RAW = METHOD_RAW


@dataclass(frozen=True)
class Revision:
    head: int
    branch_id: int = 0
    branch_revision: int = 0

    def __post_init__(self):
        if not 0 <= self.head <= 0xFFFFFFFF:
            raise ValueError(f"Revision head out of range (u32): {self.head:#x}")
        if not 0 <= self.branch_id <= 0xFFFF:
            raise ValueError(f"Branch id out of range (u16): {self.branch_id:#x}")
        if not 0 <= self.branch_revision <= 0xFFFF:
            raise ValueError(f"Branch revision out of range (u16): {self.branch_revision:#x}")

    @classmethod
    def parse(cls, text: str) -> "Revision":
        """Accept a preset name (``lbp1``, ``lbp2``, ``lbp3``) or a head such as ``0x3f8``."""
        preset = REVISION_PRESETS.get(text.strip().lower())
        if preset is not None:
            return cls(*preset)
        try:
            head = int(text, 0)
        except ValueError:
            raise ValueError(f"Unknown revision: {text!r}") from None
        return cls(head)

    def pack(self) -> bytes:
        return _REVISION_STRUCT.pack(self.head, self.branch_id, self.branch_revision)

    @classmethod
    def unpack(cls, raw: bytes) -> "Revision":
        return cls(*_REVISION_STRUCT.unpack(raw))

    def to_dict(self) -> dict:
        return {"head": f"0x{self.head:x}", "branchID": self.branch_id, "branchRevision": self.branch_revision}

    def __str__(self) -> str:
        if self.branch_id:
            return f"0x{self.head:x} (branch 0x{self.branch_id:x} rev 0x{self.branch_revision:x})"
        return f"0x{self.head:x}"


def sniff_resource_type(data: Optional[bytes]) -> ResourceType:
    if not data or len(data) < 4:
        return ResourceType.INVALID
    return _TYPE_BY_MAGIC.get(bytes(data[:3]), ResourceType.INVALID)


def sniff_method(data: bytes) -> Optional[SerializationMethod]:
    if len(data) < 4:
        return None
    try:
        return SerializationMethod(bytes(data[3:4]))
    except ValueError:
        return None


@dataclass
class ResourceHeader:
    rtype: ResourceType
    method: SerializationMethod
    revision: Optional[Revision]

    @property
    def size(self) -> int:
        return _HEADER_SIZE if self.method is SerializationMethod.BINARY else 4


def read_header(data: bytes) -> ResourceHeader:
    rtype = sniff_resource_type(data)
    if rtype is ResourceType.INVALID:
        raise CodecFailure("Unrecognised resource magic")
    method = sniff_method(data)
    if method is None:
        raise CodecFailure(f"Unknown serialization method for {rtype.name} resource")
    revision = None
    if method is SerializationMethod.BINARY:
        if len(data) < _HEADER_SIZE:
            raise CodecFailure("Binary resource header truncated")
        revision = Revision.unpack(data[4:_HEADER_SIZE])
    return ResourceHeader(rtype=rtype, method=method, revision=revision)


def pack_header(rtype: ResourceType, method: SerializationMethod, revision: Optional[Revision]) -> bytes:
    magic = _MAGIC_BY_TYPE.get(rtype)
    if magic is None:
        raise CodecFailure(f"No magic for resource type {rtype!r}")
    out = magic + method.value
    if method is SerializationMethod.BINARY:
        if revision is None:
            raise CodecFailure("Binary resources require a revision")
        out += revision.pack()
    return out


# -------- Slot lists --------

@dataclass
class ResourceDescriptor:
    sha1: Optional[bytes] = None
    guid: Optional[int] = None

    def is_guid(self) -> bool:
        return self.guid is not None


@dataclass
class Slot:
    slot_type: int
    slot_number: int
    root: Optional[ResourceDescriptor] = None
    name: str = ""


@dataclass
class SlotList:
    slots: List[Slot] = field(default_factory=list)

    def to_bytes(self, revision: Revision) -> bytes:
        out = bytearray(pack_header(ResourceType.SLOT_LIST, SerializationMethod.BINARY, revision))
        out += struct.pack(">I", len(self.slots))
        for slot in self.slots:
            root = slot.root
            if root is None:
                out += _SLOT_STRUCT.pack(slot.slot_type, slot.slot_number, REF_NONE)
            elif root.is_guid():
                out += _SLOT_STRUCT.pack(slot.slot_type, slot.slot_number, REF_GUID)
                out += struct.pack(">I", root.guid)
            else:
                if root.sha1 is None or len(root.sha1) != SHA1_SIZE:
                    raise CodecFailure("Hash reference must be a 20-byte SHA-1")
                out += _SLOT_STRUCT.pack(slot.slot_type, slot.slot_number, REF_HASH)
                out += root.sha1
            name = slot.name.encode("utf-8")
            out += struct.pack(">H", len(name)) + name
        return bytes(out)


def decode_slot_list(data: bytes) -> SlotList:
    header = read_header(data)
    if header.rtype is not ResourceType.SLOT_LIST:
        raise CodecFailure(f"Expected SLOT_LIST resource, found {header.rtype.name}")
    if header.method is not SerializationMethod.BINARY:
        raise CodecFailure("Only binary slot lists are supported")
    pos = header.size

    def take(n: int) -> bytes:
        nonlocal pos
        if pos + n > len(data):
            raise CodecFailure("Slot list truncated")
        chunk = data[pos : pos + n]
        pos += n
        return chunk

    (count,) = struct.unpack(">I", take(4))
    slots: List[Slot] = []
    for _ in range(count):
        slot_type, slot_number, flags = _SLOT_STRUCT.unpack(take(_SLOT_STRUCT.size))
        if flags == REF_NONE:
            root = None
        elif flags == REF_HASH:
            root = ResourceDescriptor(sha1=take(SHA1_SIZE))
        elif flags == REF_GUID:
            root = ResourceDescriptor(guid=struct.unpack(">I", take(4))[0])
        else:
            raise CodecFailure(f"Bad slot reference flags: {flags}")
        (name_len,) = struct.unpack(">H", take(2))
        try:
            name = take(name_len).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecFailure(f"Slot name is not UTF-8: {exc}") from exc
        slots.append(Slot(slot_type=slot_type, slot_number=slot_number, root=root, name=name))
    return SlotList(slots=slots)


# -------- JSON envelope --------

def resource_to_json(data: bytes) -> str:
    """Render a resource as a JSON document keeping its payload intact."""
    header = read_header(data)
    doc = {
        "type": header.rtype.name,
        "method": header.method.name,
        "revision": header.revision.to_dict() if header.revision else None,
        "sha1": sha1(data).hex(),
        "payload": base64.b64encode(data[header.size :]).decode("ascii"),
    }
    return _json.dumps(doc, indent=2) + "\n"


def resource_from_json(text: str) -> bytes:
    """Rebuild resource bytes from a document written by resource_to_json."""
    try:
        doc = _json.loads(text)
    except ValueError as exc:
        raise CodecFailure(f"Malformed JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise CodecFailure("Resource document must be a JSON object")
    try:
        rtype = ResourceType[doc["type"]]
        method = SerializationMethod[doc.get("method", "BINARY")]
        rev = doc.get("revision")
        revision = None
        if rev is not None:
            revision = Revision(
                head=int(str(rev["head"]), 0),
                branch_id=int(rev.get("branchID", 0)),
                branch_revision=int(rev.get("branchRevision", 0)),
            )
        payload = base64.b64decode(doc["payload"], validate=True)
        data = pack_header(rtype, method, revision) + payload
    except (KeyError, TypeError, ValueError, struct.error) as exc:
        raise CodecFailure(f"Invalid resource document: {exc}") from exc
    expected = doc.get("sha1")
    if expected:
        if not isinstance(expected, str):
            raise CodecFailure(f"Invalid sha1 field: expected a hex string, got {type(expected).__name__}")
        try:
            digest = parse_sha1_hex(expected)
        except ValueError as exc:
            raise CodecFailure(f"Invalid sha1 field: {exc}") from exc
        if sha1(data) != digest:
            raise CodecFailure("Resource SHA-1 mismatch; document was altered or truncated")
    return data
