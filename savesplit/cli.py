from __future__ import annotations

import argparse
import json as _json
import sys
from pathlib import Path
from typing import List, Optional

from savesplit.chunkcodec import ChunkCodec
from savesplit.constants import (
    DEFAULT_FOLDER_MARKER,
    DEFAULT_INPUT_DIR,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REVISION_PRESET,
)
from savesplit.convert import decode_batch, encode_level, pack_archive, unpack_folder
from savesplit.errors import SaveSplitError
from savesplit.resource import Revision
from savesplit.xxtea import parse_key_hex


def load_key(key_hex: Optional[str] = None, key_file: Optional[str] = None) -> bytes:
    """Resolve the XXTEA key from a hex string or a file.

    A key file may hold either 16 raw bytes or the key as hex text.
    """
    if key_hex:
        return parse_key_hex(key_hex)
    if key_file:
        raw = Path(key_file).read_bytes()
        if len(raw) == 16:
            return raw
        return parse_key_hex(raw.decode("ascii", errors="replace"))
    raise ValueError("An XXTEA key is required (--key or --key-file)")


def cmd_decode(
    input_dir: str = DEFAULT_INPUT_DIR,
    output_dir: str = DEFAULT_OUTPUT_DIR,
    *,
    key: bytes,
    marker: str = DEFAULT_FOLDER_MARKER,
    jobs: int = 1,
    as_json: bool = False,
    quiet: bool = False,
) -> bool:
    """Convert every level folder under ``input_dir`` to JSON.

    Args:
        input_dir: Folder holding one sub-folder of chunk files per level.
        output_dir: Destination for ``<folder>.json`` files.
        key: 16-byte XXTEA key.
        marker: Only sub-folders whose name contains this string are decoded.
        jobs: Maximum parallel workers.
        as_json: When True, print a JSON result summary.
        quiet: Suppress per-folder lines (failures and the summary still print).

    Returns:
        True when every folder converted, False otherwise.
    """
    codec = ChunkCodec.from_key(key)
    summary = decode_batch(input_dir, output_dir, codec, marker=marker, jobs=jobs)
    if as_json:
        print(
            _json.dumps(
                {
                    "results": [r.to_dict() for r in summary.results],
                    "success": summary.success,
                    "failed": summary.failed,
                }
            )
        )
        return summary.failed == 0

    if not quiet:
        print(f"Found {len(summary.results)} level folder(s).")
    for r in summary.results:
        if r.status == "ok":
            if not quiet:
                print(f"[OK]   {r.name} -> {Path(r.output).name} (via {r.source}, sha1 {r.level_sha1})")
        else:
            print(f"[FAIL] {r.name}: {r.message}", file=sys.stderr)
    print(f"Summary: success={summary.success} failed={summary.failed}")
    if not quiet:
        print(f"Output: {Path(output_dir).resolve()}")
    return summary.failed == 0


def cmd_encode(json_path: str, output_dir: str, *, key: bytes, revision: Revision, quiet: bool = False) -> bool:
    """Convert one JSON level document to a folder of encrypted chunks."""
    if not quiet:
        print(f"[PROCESSING] {Path(json_path).name}")
    result = encode_level(json_path, output_dir, ChunkCodec.from_key(key), revision)
    if not quiet:
        print(f"  Level resource: {result.level_size} bytes, SHA1: {result.level_sha1}")
        print(f"  Game revision: {revision}")
        print(f"  Split into {result.chunks} encrypted chunk(s)")
        if result.stale_removed:
            print(f"  Removed {result.stale_removed} stale chunk file(s)")
    print(f"[OK] {Path(json_path).name} -> {output_dir}")
    return True


def cmd_unpack(folder: str, out_path: str, *, key: bytes) -> bool:
    size = unpack_folder(folder, out_path, ChunkCodec.from_key(key))
    print(f"Reassembled {size} bytes -> {out_path}")
    return True


def cmd_pack(archive_path: str, output_dir: str, *, key: bytes) -> bool:
    count = pack_archive(archive_path, output_dir, ChunkCodec.from_key(key))
    print(f"Split into {count} encrypted chunk(s) -> {output_dir}")
    return True


def _add_key_args(ap: argparse.ArgumentParser) -> None:
    grp = ap.add_mutually_exclusive_group(required=True)
    grp.add_argument("--key", help="XXTEA key as 32 hex digits")
    grp.add_argument("--key-file", help="File holding the XXTEA key (16 raw bytes or hex text)")


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="savesplit",
        description="Convert split, chunk-encrypted FAR4 save folders to JSON and back",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_decode = sub.add_parser("decode", help="Decode level folders to JSON")
    ap_decode.add_argument("--input", default=DEFAULT_INPUT_DIR, help="Folder of level sub-folders (default: input)")
    ap_decode.add_argument("--output", default=DEFAULT_OUTPUT_DIR, help="Output folder for JSON (default: output)")
    ap_decode.add_argument("--marker", default=DEFAULT_FOLDER_MARKER, help="Sub-folder name filter (default: LEVEL)")
    ap_decode.add_argument("--jobs", "-j", type=int, default=1, help="Parallel jobs (default 1)")
    ap_decode.add_argument("--json", action="store_true", help="Emit JSON result summary")
    ap_decode.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_key_args(ap_decode)

    ap_encode = sub.add_parser("encode", help="Encode a JSON level into a chunk folder")
    ap_encode.add_argument("input", help="Input .json path")
    ap_encode.add_argument("output", help="Output folder for chunk files")
    ap_encode.add_argument(
        "--revision",
        default=DEFAULT_REVISION_PRESET,
        help="Game revision for the new archive: lbp1, lbp2, lbp3 or a head such as 0x3f8 (default: lbp2)",
    )
    ap_encode.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_key_args(ap_encode)

    ap_unpack = sub.add_parser("unpack", help="Reassemble a chunk folder into a raw archive")
    ap_unpack.add_argument("folder", help="Folder of chunk files")
    ap_unpack.add_argument("output", help="Raw archive output path")
    _add_key_args(ap_unpack)

    ap_pack = sub.add_parser("pack", help="Split a raw archive into a chunk folder")
    ap_pack.add_argument("archive", help="Raw archive path")
    ap_pack.add_argument("output", help="Output folder for chunk files")
    _add_key_args(ap_pack)

    args = ap.parse_args(argv)
    try:
        key = load_key(args.key, args.key_file)
        if args.cmd == "decode":
            success = cmd_decode(
                args.input,
                args.output,
                key=key,
                marker=args.marker,
                jobs=args.jobs,
                as_json=args.json,
                quiet=args.quiet,
            )
            sys.exit(0 if success else 1)
        elif args.cmd == "encode":
            cmd_encode(args.input, args.output, key=key, revision=Revision.parse(args.revision), quiet=args.quiet)
        elif args.cmd == "unpack":
            cmd_unpack(args.folder, args.output, key=key)
        elif args.cmd == "pack":
            cmd_pack(args.archive, args.output, key=key)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (SaveSplitError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
