"""
Stabilizer chains.

`stabilize` picks a chain from the container format and, where one
applies, the ecosystem. Each chain is idempotent: feeding its output back
in yields the same bytes.
"""
from __future__ import annotations

import base64
import hashlib
import zlib
from email.parser import HeaderParser
from typing import Dict, List, Optional, Sequence

from oss_rebuild.archive.ar import stabilize_ar
from oss_rebuild.archive.formats import detect_format, gzip_fixed
from oss_rebuild.archive.tar import TarStabilizer, stabilize_tar, stable_cargo_vcs_hash
from oss_rebuild.archive.zip import ZipMember, ZipStabilizer, stabilize_zip
from oss_rebuild.core.types import ArchiveFormat, Ecosystem
from oss_rebuild.exceptions import MalformedError

_NEUTRAL_METADATA_JSON = b"metadata.json neutralized\n"
_NEUTRAL_DESCRIPTION = b"DESCRIPTION.rst neutralized\n"


def _canonical_header(key: str) -> str:
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def stable_wheel_metadata_json(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        if member.name.endswith("metadata.json"):
            member.body = _NEUTRAL_METADATA_JSON
    return members


def stable_wheel_description(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        if member.name.endswith("DESCRIPTION.rst"):
            member.body = _NEUTRAL_DESCRIPTION
    return members


def canonicalize_metadata(body: bytes) -> bytes:
    """Sorts METADATA headers, drops the long description and blanks `Author-Email: UNKNOWN`."""
    message = HeaderParser().parsestr(body.decode("utf-8", errors="replace"))
    headers: Dict[str, List[str]] = {}
    for key, value in message.items():
        headers.setdefault(_canonical_header(key), []).append(str(value))
    if headers.get("Author-Email") == ["UNKNOWN"]:
        headers["Author-Email"] = [""]
    lines = []
    for key in sorted(headers):
        for value in sorted(headers[key]):
            lines.append(f"{key}: {value}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def stable_wheel_metadata(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        if member.name.endswith(".dist-info/METADATA"):
            member.body = canonicalize_metadata(member.body)
    return members


def stable_crlf(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        member.body = member.body.replace(b"\r\n", b"\n")
    return members


def _record_digest(body: bytes) -> str:
    return base64.urlsafe_b64encode(hashlib.sha256(body).digest()).rstrip(b"=").decode("ascii")


def stable_wheel_record(members: List[ZipMember]) -> List[ZipMember]:
    """Regenerates RECORD from the (already stabilized) member contents."""
    lines = [
        f"{member.name},sha256={_record_digest(member.body)},{len(member.body)}"
        for member in members
        if not member.name.endswith("RECORD") and not member.is_dir
    ]
    record = ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
    for member in members:
        if member.name.endswith(".dist-info/RECORD"):
            member.body = record
            break
    return members


WHEEL_STABILIZERS: List[ZipStabilizer] = [
    stable_wheel_metadata_json,
    stable_wheel_metadata,
    stable_wheel_description,
    stable_crlf,
    stable_wheel_record,
]

CRATE_STABILIZERS: List[TarStabilizer] = [stable_cargo_vcs_hash]


def _gunzip(data: bytes) -> bytes:
    try:
        return zlib.decompress(data, 16 + zlib.MAX_WBITS)
    except zlib.error as exc:
        raise MalformedError(f"invalid gzip stream: {exc}") from exc


def tar_extras(ecosystem: Optional[Ecosystem]) -> Sequence[TarStabilizer]:
    return CRATE_STABILIZERS if ecosystem == Ecosystem.CRATESIO else ()


def zip_extras(ecosystem: Optional[Ecosystem]) -> Sequence[ZipStabilizer]:
    return WHEEL_STABILIZERS if ecosystem == Ecosystem.PYPI else ()


def stabilize(data: bytes, fmt: Optional[ArchiveFormat] = None, ecosystem: Optional[Ecosystem] = None) -> bytes:
    fmt = fmt or detect_format(data)
    if fmt == ArchiveFormat.TARGZ:
        return gzip_fixed(stabilize_tar(_gunzip(data), tar_extras(ecosystem)))
    if fmt == ArchiveFormat.TAR:
        return stabilize_tar(data, tar_extras(ecosystem))
    if fmt == ArchiveFormat.ZIP:
        return stabilize_zip(data, zip_extras(ecosystem))
    if fmt == ArchiveFormat.AR:
        return stabilize_ar(data)
    if fmt == ArchiveFormat.GZIP:
        return gzip_fixed(_gunzip(data))
    return data
