"""
savesplit: tooling for split, chunk-encrypted FAR4 game saves.

Features:

- Reassembly of numbered chunk folders (``0``, ``1``, ...) into one FAR4 archive
  stream, with the unencrypted ``FAR4`` trailer on the final chunk.
- The inverse split: 0xE000-byte chunks, XXTEA-encrypted, trailer re-attached.
- Root resolution: slot list -> first slot's level, direct level roots, and a
  full directory scan when neither declared path yields a level.
- Batch decode of level folders to JSON and encode of a JSON level back to a
  chunk folder, via ``savesplit decode`` / ``savesplit encode``.

The XXTEA key is never built in; pass it with ``--key`` or ``--key-file``.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "xxtea",
    "hashutil",
    "chunkcodec",
    "chunkstore",
    "resource",
    "archive",
    "resolver",
    "convert",
    "cli",
]
