from __future__ import annotations

import concurrent.futures as _fut
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .archive import SaveArchive
from .chunkcodec import ChunkCodec
from .chunkstore import ChunkStorage, DirectoryStorage, reassemble, split
from .constants import CHUNK_SIZE, DEFAULT_FOLDER_MARKER
from .hashutil import sha1
from .errors import IOFailure, MissingChunkZero, NoLevelResource, SaveSplitError
from .resolver import resolve_level
from .resource import ResourceType, Revision, resource_from_json, resource_to_json


PathLike = Union[str, Path]


@dataclass
class ItemResult:
    name: str
    status: str = "unknown"  # "ok" or "fail"
    output: Optional[str] = None
    source: Optional[str] = None
    level_sha1: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in vars(self).items() if v is not None}


@dataclass
class DecodeSummary:
    results: List[ItemResult] = field(default_factory=list)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.status == "ok")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status != "ok")


@dataclass
class EncodeResult:
    chunks: int
    level_sha1: str
    level_size: int
    archive_size: int
    stale_removed: int = 0


def write_atomic(path: PathLike, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file in the same folder.

    The destination is either fully written or left untouched.
    """
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=str(path.parent), prefix=path.name + ".", suffix=".tmp", delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, str(path))
    except OSError as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise IOFailure(f"failed to write {path}: {exc}") from exc


def find_level_folders(input_dir: PathLike, marker: str = DEFAULT_FOLDER_MARKER) -> List[Path]:
    """Sub-directories of ``input_dir`` whose name contains ``marker``, sorted by name."""
    root = Path(input_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Input directory does not exist: {root.resolve()}")
    return sorted((p for p in root.iterdir() if p.is_dir() and marker in p.name), key=lambda p: p.name)


def decode_level_folder(
    folder: PathLike,
    output_dir: PathLike,
    codec: ChunkCodec,
    *,
    storage_cls: Callable[[Path], ChunkStorage] = DirectoryStorage,
) -> ItemResult:
    """Decode one chunk folder to ``<output_dir>/<folder name>.json``.

    Raises a SaveSplitError subclass when the folder cannot be converted; no
    output file is written in that case.
    """
    folder = Path(folder)
    storage = storage_cls(folder)
    if not storage.exists(0):
        raise MissingChunkZero(f"No '0' chunk in {folder.name}")
    archive_data = reassemble(storage, codec)
    if archive_data is None:
        raise MissingChunkZero(f"No '0' chunk in {folder.name}")

    archive = SaveArchive.parse(archive_data)
    level = resolve_level(archive)
    if level is None:
        raise NoLevelResource(f"No level resource found in {folder.name}")

    text = resource_to_json(level.data)
    out_path = Path(output_dir) / f"{folder.name}.json"
    write_atomic(out_path, text.encode("utf-8"))
    return ItemResult(
        name=folder.name,
        status="ok",
        output=str(out_path),
        source=level.source,
        level_sha1=level.sha1.hex(),
    )


def _decode_one(folder: Path, output_dir: Path, codec: ChunkCodec, storage_cls) -> ItemResult:
    try:
        return decode_level_folder(folder, output_dir, codec, storage_cls=storage_cls)
    except (SaveSplitError, OSError, ValueError) as exc:
        return ItemResult(name=folder.name, status="fail", message=f"{type(exc).__name__}: {exc}")


def decode_batch(
    input_dir: PathLike,
    output_dir: PathLike,
    codec: ChunkCodec,
    *,
    marker: str = DEFAULT_FOLDER_MARKER,
    jobs: int = 1,
    storage_cls: Callable[[Path], ChunkStorage] = DirectoryStorage,
) -> DecodeSummary:
    """Decode every level folder under ``input_dir``.

    Per-folder failures are recorded in the summary and do not stop the
    batch. Results keep folder order regardless of ``jobs``.

    Raises:
        FileNotFoundError: If ``input_dir`` does not exist.
        RuntimeError: If no folder name contains ``marker``.
    """
    folders = find_level_folders(input_dir, marker)
    if not folders:
        raise RuntimeError(f"No {marker} folders found in {Path(input_dir).resolve()}")
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    summary = DecodeSummary()
    if jobs <= 1:
        for folder in folders:
            summary.results.append(_decode_one(folder, out, codec, storage_cls))
        return summary
    with _fut.ThreadPoolExecutor(max_workers=int(jobs)) as ex:
        for r in ex.map(lambda f: _decode_one(f, out, codec, storage_cls), folders):
            summary.results.append(r)
    return summary


def build_level_archive(level_data: bytes, revision: Revision, *, hashinate: bool = True) -> bytes:
    """Wrap a level resource in a new save archive rooted at that level."""
    archive = SaveArchive(revision)
    level_hash = archive.add(level_data)
    archive.key.root_type = ResourceType.LEVEL
    archive.key.root_hash = level_hash
    return archive.build(hashinate)


def encode_level(
    json_path: PathLike,
    output_dir: PathLike,
    codec: ChunkCodec,
    revision: Revision,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> EncodeResult:
    """Convert one JSON level document into a folder of encrypted chunks.

    ``revision`` is the game revision written into the new archive's key.
    Any failure propagates to the caller.
    """
    text = Path(json_path).read_text(encoding="utf-8")
    level_data = resource_from_json(text)
    archive_data = build_level_archive(level_data, revision)

    storage = DirectoryStorage(output_dir)
    count = split(archive_data, storage, codec, chunk_size=chunk_size)
    try:
        removed = storage.clear_stale(count)
    except OSError as exc:
        raise IOFailure(f"failed to remove stale chunks in {output_dir}: {exc}") from exc
    return EncodeResult(
        chunks=count,
        level_sha1=sha1(level_data).hex(),
        level_size=len(level_data),
        archive_size=len(archive_data),
        stale_removed=removed,
    )


def unpack_folder(folder: PathLike, out_path: PathLike, codec: ChunkCodec) -> int:
    """Reassemble a chunk folder into a raw archive file; returns its size."""
    data = reassemble(DirectoryStorage(folder), codec)
    if data is None:
        raise MissingChunkZero(f"No '0' chunk in {Path(folder).name}")
    write_atomic(out_path, data)
    return len(data)


def pack_archive(archive_path: PathLike, output_dir: PathLike, codec: ChunkCodec, *, chunk_size: int = CHUNK_SIZE) -> int:
    """Split a raw archive file into encrypted chunks; returns the chunk count."""
    data = Path(archive_path).read_bytes()
    storage = DirectoryStorage(output_dir)
    count = split(data, storage, codec, chunk_size=chunk_size)
    try:
        storage.clear_stale(count)
    except OSError as exc:
        raise IOFailure(f"failed to remove stale chunks in {output_dir}: {exc}") from exc
    return count
