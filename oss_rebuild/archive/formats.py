from __future__ import annotations

import gzip
import zlib

from oss_rebuild.core.types import ArchiveFormat

_GZIP_MAGIC = b"\x1f\x8b"
_ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06")
_AR_MAGIC = b"!<arch>\n"
_TAR_MAGIC_OFFSET = 257


def _looks_like_tar(head: bytes) -> bool:
    return head[_TAR_MAGIC_OFFSET:_TAR_MAGIC_OFFSET + 5] == b"ustar"


def detect_format(data: bytes) -> ArchiveFormat:
    """Sniffs the container format from leading bytes."""
    if data.startswith(_GZIP_MAGIC):
        try:
            head = zlib.decompressobj(16 + zlib.MAX_WBITS).decompress(data[:65536], 1024)
        except zlib.error:
            return ArchiveFormat.GZIP
        return ArchiveFormat.TARGZ if _looks_like_tar(head) else ArchiveFormat.GZIP
    if data.startswith(_ZIP_MAGICS):
        return ArchiveFormat.ZIP
    if data.startswith(_AR_MAGIC):
        return ArchiveFormat.AR
    if _looks_like_tar(data[:512]):
        return ArchiveFormat.TAR
    return ArchiveFormat.RAW


def format_for_artifact(name: str) -> ArchiveFormat:
    lowered = name.lower()
    if lowered.endswith((".tgz", ".tar.gz", ".crate")):
        return ArchiveFormat.TARGZ
    if lowered.endswith(".tar"):
        return ArchiveFormat.TAR
    if lowered.endswith((".whl", ".zip", ".jar", ".egg")):
        return ArchiveFormat.ZIP
    if lowered.endswith((".deb", ".a")):
        return ArchiveFormat.AR
    if lowered.endswith(".gz"):
        return ArchiveFormat.GZIP
    return ArchiveFormat.RAW


def gzip_fixed(data: bytes) -> bytes:
    """Gzip with a fixed header: zero mtime, no file name, constant OS byte."""
    return gzip.compress(data, compresslevel=9, mtime=0)
