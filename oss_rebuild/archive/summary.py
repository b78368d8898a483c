from __future__ import annotations

import hashlib
import zlib
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from oss_rebuild.archive.ar import decompress_member, read_ar
from oss_rebuild.archive.formats import detect_format
from oss_rebuild.archive.tar import read_tar
from oss_rebuild.archive.zip import read_zip
from oss_rebuild.core.types import ArchiveFormat
from oss_rebuild.exceptions import MalformedError

_CRLF = b"\r\n"


@dataclass
class ContentSummary:
    """Sorted file listing of an archive with per-file content hashes."""

    files: List[str] = field(default_factory=list)
    file_hashes: List[str] = field(default_factory=list)
    crlf_count: int = 0

    def add(self, name: str, body: bytes) -> None:
        self.files.append(name)
        self.file_hashes.append(hashlib.sha256(body).hexdigest())
        self.crlf_count += body.count(_CRLF)

    def sort(self) -> "ContentSummary":
        pairs = sorted(zip(self.files, self.file_hashes))
        self.files = [name for name, _ in pairs]
        self.file_hashes = [digest for _, digest in pairs]
        return self

    def diff(self, other: "ContentSummary") -> Tuple[List[str], List[str], List[str]]:
        """Merge-walks two sorted summaries into (self_only, differing, other_only)."""
        left_only: List[str] = []
        diffs: List[str] = []
        right_only: List[str] = []
        i = j = 0
        while i < len(self.files) or j < len(other.files):
            if i >= len(self.files):
                right_only.append(other.files[j])
                j += 1
            elif j >= len(other.files):
                left_only.append(self.files[i])
                i += 1
            elif self.files[i] == other.files[j]:
                if self.file_hashes[i] != other.file_hashes[j]:
                    diffs.append(other.files[j])
                i += 1
                j += 1
            elif self.files[i] < other.files[j]:
                left_only.append(self.files[i])
                i += 1
            else:
                right_only.append(other.files[j])
                j += 1
        return left_only, diffs, right_only


def summarize(data: bytes, fmt: Optional[ArchiveFormat] = None, name: str = "artifact") -> ContentSummary:
    fmt = fmt or detect_format(data)
    summary = ContentSummary()
    if fmt == ArchiveFormat.TARGZ:
        try:
            data = zlib.decompress(data, 16 + zlib.MAX_WBITS)
        except zlib.error as exc:
            raise MalformedError(f"invalid gzip stream: {exc}") from exc
        fmt = ArchiveFormat.TAR
    if fmt == ArchiveFormat.TAR:
        for member in read_tar(data):
            summary.add(member.info.name, member.body)
    elif fmt == ArchiveFormat.ZIP:
        for member in read_zip(data):
            summary.add(member.name, member.body)
    elif fmt == ArchiveFormat.AR:
        for member in read_ar(data):
            payload = decompress_member(member)
            if payload is None:
                summary.add(member.name, member.body)
                continue
            for entry in read_tar(payload):
                summary.add(f"{member.name}/{entry.info.name}", entry.body)
    elif fmt == ArchiveFormat.GZIP:
        try:
            summary.add(name, zlib.decompress(data, 16 + zlib.MAX_WBITS))
        except zlib.error as exc:
            raise MalformedError(f"invalid gzip stream: {exc}") from exc
    else:
        summary.add(name, data)
    return summary.sort()
