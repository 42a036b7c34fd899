# Chunked container
CHUNK_SIZE = 0xE000  # 57344 plaintext bytes per chunk
TRAILER = b"FAR4"    # 0x46 0x41 0x52 0x34, unencrypted, after the last chunk
TRAILER_SIZE = len(TRAILER)

# FAR4 save archive
FAR_MAGIC = TRAILER
FAR_REVISION = 4
SHA1_SIZE = 20
HASHINATE_SIZE = SHA1_SIZE

# Resource serialization methods (4th magic byte)
METHOD_BINARY = b"b"
METHOD_TEXT = b"t"
METHOD_ENCRYPTED = b"e"
METHOD_RAW = b" "

# Slot root reference flags
REF_NONE = 0
REF_HASH = 1
REF_GUID = 2

# Game revisions used when building new archives
REVISION_PRESETS = {
    "lbp1": (0x272, 0, 0),
    "lbp2": (0x3F8, 0, 0),
    "lbp3": (0x3E2, 0x4C44, 0x0017),
}
DEFAULT_REVISION_PRESET = "lbp2"

# Orchestrator defaults (working-directory relative)
DEFAULT_INPUT_DIR = "input"
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_FOLDER_MARKER = "LEVEL"

XXTEA_KEY_SIZE = 16
