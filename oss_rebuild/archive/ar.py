from __future__ import annotations

import lzma
import zlib
from dataclasses import dataclass
from typing import List, Optional

from oss_rebuild.archive.formats import gzip_fixed
from oss_rebuild.archive.tar import stabilize_tar
from oss_rebuild.exceptions import MalformedError

AR_MAGIC = b"!<arch>\n"
_HEADER_SIZE = 60
_FILE_MAGIC = b"`\n"


@dataclass
class ArMember:
    name_field: bytes
    body: bytes
    mtime: int = 0
    uid: int = 0
    gid: int = 0
    mode: int = 0o100644

    @property
    def name(self) -> str:
        return self.name_field.decode("ascii", errors="replace").rstrip(" ").rstrip("/")


def _field(raw: bytes) -> str:
    return raw.decode("ascii", errors="replace").strip()


def read_ar(data: bytes) -> List[ArMember]:
    if not data.startswith(AR_MAGIC):
        raise MalformedError("invalid ar archive: bad magic")
    members: List[ArMember] = []
    offset = len(AR_MAGIC)
    while offset < len(data):
        header = data[offset:offset + _HEADER_SIZE]
        if len(header) < _HEADER_SIZE or header[58:60] != _FILE_MAGIC:
            raise MalformedError(f"invalid ar archive: bad member header at offset {offset}")
        try:
            size = int(_field(header[48:58]))
            mtime = int(_field(header[16:28]) or "0")
            uid = int(_field(header[28:34]) or "0")
            gid = int(_field(header[34:40]) or "0")
            mode = int(_field(header[40:48]) or "0", 8)
        except ValueError as exc:
            raise MalformedError(f"invalid ar archive: bad numeric field at offset {offset}") from exc
        start = offset + _HEADER_SIZE
        body = data[start:start + size]
        if len(body) != size:
            raise MalformedError("invalid ar archive: truncated member")
        members.append(ArMember(name_field=header[:16], body=body, mtime=mtime, uid=uid, gid=gid, mode=mode))
        offset = start + size + (size % 2)
    return members


def write_ar(members: List[ArMember]) -> bytes:
    out = bytearray(AR_MAGIC)
    for member in members:
        out += member.name_field.ljust(16, b" ")[:16]
        out += str(member.mtime).encode("ascii").ljust(12, b" ")
        out += str(member.uid).encode("ascii").ljust(6, b" ")
        out += str(member.gid).encode("ascii").ljust(6, b" ")
        out += format(member.mode, "o").encode("ascii").ljust(8, b" ")
        out += str(len(member.body)).encode("ascii").ljust(10, b" ")
        out += _FILE_MAGIC
        out += member.body
        if len(member.body) % 2:
            out += b"\n"
    return bytes(out)


def decompress_member(member: ArMember) -> Optional[bytes]:
    """Returns the tar payload of a `*.tar[.gz|.xz]` member, or None when it is not one."""
    name = member.name
    try:
        if name.endswith(".tar.gz"):
            return zlib.decompress(member.body, 16 + zlib.MAX_WBITS)
        if name.endswith(".tar.xz"):
            return lzma.decompress(member.body)
    except (zlib.error, lzma.LZMAError) as exc:
        raise MalformedError(f"invalid compressed member {name}: {exc}") from exc
    if name.endswith(".tar"):
        return member.body
    return None


def _stabilize_nested(member: ArMember) -> bytes:
    payload = decompress_member(member)
    if payload is None:
        return member.body
    stable = stabilize_tar(payload)
    if member.name.endswith(".tar.gz"):
        return gzip_fixed(stable)
    if member.name.endswith(".tar.xz"):
        return lzma.compress(stable, format=lzma.FORMAT_XZ, preset=6)
    return stable


def stabilize_ar(data: bytes) -> bytes:
    """Zeroes member headers and stabilizes nested tarballs, keeping member order."""
    stable: List[ArMember] = []
    for member in read_ar(data):
        stable.append(ArMember(name_field=member.name_field, body=_stabilize_nested(member)))
    return write_ar(stable)
