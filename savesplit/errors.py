class SaveSplitError(Exception):
    """Base class for savesplit-specific errors."""


# Decode path, fatal per item
class MissingChunkZero(SaveSplitError):
    pass


class ReassemblyFailure(SaveSplitError):
    pass


class NoLevelResource(SaveSplitError):
    pass


# Either direction
class CodecFailure(SaveSplitError):
    pass


class IOFailure(SaveSplitError):
    pass


class ChunkCipherError(SaveSplitError):
    pass


class ArchiveFormatError(SaveSplitError):
    pass
