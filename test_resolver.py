from __future__ import annotations

import contextlib
import io
import unittest

from savesplit.archive import SaveArchive
from savesplit.hashutil import sha1
from savesplit.resolver import resolve_level, scan_for_level
from savesplit.resource import (
    ResourceDescriptor,
    ResourceType,
    Revision,
    SerializationMethod,
    Slot,
    SlotList,
    decode_slot_list,
    pack_header,
)


LBP2 = Revision(0x3F8)


def _resource(rtype: ResourceType, payload: bytes) -> bytes:
    return pack_header(rtype, SerializationMethod.BINARY, LBP2) + payload


def _slot_list(*roots) -> bytes:
    return SlotList(slots=[Slot(slot_type=2, slot_number=i, root=r) for i, r in enumerate(roots)]).to_bytes(LBP2)


class CountingArchive:
    """Wraps a SaveArchive and records how the resolver touched it."""

    def __init__(self, archive: SaveArchive):
        self.archive = archive
        self.key = archive.key
        self.extracted = []
        self.scans = 0

    def extract(self, digest):
        self.extracted.append(digest)
        return self.archive.extract(digest)

    def __iter__(self):
        self.scans += 1
        return iter(self.archive)


def _archive(blobs, root_type: ResourceType, root_blob=None) -> CountingArchive:
    archive = SaveArchive(LBP2)
    for blob in blobs:
        archive.add(blob)
    archive.key.root_type = root_type
    if root_blob is not None:
        archive.key.root_hash = sha1(root_blob)
    return CountingArchive(archive)


def _no_slots(_data):
    raise AssertionError("slot list decoder must not run")


class ResolverTests(unittest.TestCase):
    def setUp(self):
        self.decoy = _resource(ResourceType.LEVEL, b"first level in directory")
        self.level = _resource(ResourceType.LEVEL, b"slot referenced level")
        self.plan = _resource(ResourceType.PLAN, b"a plan")

    def test_slot_list_root_resolves_first_slot(self):
        slots = _slot_list(ResourceDescriptor(sha1=sha1(self.level)), ResourceDescriptor(sha1=sha1(self.decoy)))
        archive = _archive([self.decoy, slots, self.level], ResourceType.SLOT_LIST, slots)
        found = resolve_level(archive)
        self.assertEqual(found.data, self.level)
        self.assertEqual(found.sha1, sha1(self.level))
        self.assertEqual(found.source, "slot_list")
        self.assertEqual(archive.scans, 0)

    def test_level_root_skips_slot_lists(self):
        archive = _archive([self.decoy, self.level], ResourceType.LEVEL, self.level)
        found = resolve_level(archive, decode_slots=_no_slots)
        self.assertEqual(found.data, self.level)
        self.assertEqual(found.source, "root")
        self.assertEqual(archive.scans, 0)
        self.assertEqual(archive.extracted, [sha1(self.level)])

    def test_guid_slot_falls_back_to_scan(self):
        slots = _slot_list(ResourceDescriptor(guid=0xBEEF))
        archive = _archive([self.plan, slots, self.level], ResourceType.SLOT_LIST, slots)
        found = resolve_level(archive)
        self.assertEqual(found.data, self.level)
        self.assertEqual(found.source, "scan")
        self.assertEqual(archive.scans, 1)

    def test_empty_slot_list_falls_back_to_scan(self):
        slots = _slot_list()
        archive = _archive([slots, self.level], ResourceType.SLOT_LIST, slots)
        self.assertEqual(resolve_level(archive).source, "scan")

    def test_slot_without_root_falls_back_to_scan(self):
        slots = _slot_list(None)
        archive = _archive([slots, self.level], ResourceType.SLOT_LIST, slots)
        self.assertEqual(resolve_level(archive).data, self.level)

    def test_dangling_slot_reference_falls_back_to_scan(self):
        slots = _slot_list(ResourceDescriptor(sha1=b"\x42" * 20))
        archive = _archive([slots, self.level], ResourceType.SLOT_LIST, slots)
        found = resolve_level(archive)
        self.assertEqual(found.source, "scan")
        self.assertIn(b"\x42" * 20, archive.extracted)

    def test_malformed_slot_list_falls_back_to_scan(self):
        broken = _resource(ResourceType.SLOT_LIST, b"\x00\x00\x00\x05")
        archive = _archive([broken, self.level], ResourceType.SLOT_LIST, broken)
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            found = resolve_level(archive, decode_slots=decode_slot_list)
        self.assertEqual(found.data, self.level)
        self.assertIn("malformed", err.getvalue())

    def test_missing_root_blob_falls_back_to_scan(self):
        archive = _archive([self.plan, self.level], ResourceType.LEVEL)
        found = resolve_level(archive)
        self.assertEqual(found.source, "scan")
        self.assertEqual(found.data, self.level)

    def test_other_root_type_scans_in_directory_order(self):
        archive = _archive([self.plan, self.decoy, self.level], ResourceType.PLAN, self.plan)
        found = resolve_level(archive, decode_slots=_no_slots)
        self.assertEqual(found.data, self.decoy)
        self.assertEqual(found.sha1, sha1(self.decoy))
        self.assertEqual(archive.scans, 1)

    def test_not_found(self):
        archive = _archive([self.plan], ResourceType.INVALID)
        self.assertIsNone(resolve_level(archive))
        self.assertIsNone(scan_for_level(SaveArchive(LBP2)))


if __name__ == "__main__":
    unittest.main()
