from __future__ import annotations

import io
import json
import tarfile
import zlib
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from oss_rebuild.exceptions import MalformedError

_DIR_MODE = 0o755
_EXEC_MODE = 0o755
_FILE_MODE = 0o644
_STABLE_VCS_SHA1 = "x" * 40


@dataclass
class TarMember:
    info: tarfile.TarInfo
    body: bytes = b""


def read_tar(data: bytes) -> List[TarMember]:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as archive:
            members: List[TarMember] = []
            for info in archive:
                body = b""
                if info.isreg():
                    handle = archive.extractfile(info)
                    body = handle.read() if handle is not None else b""
                members.append(TarMember(info=info, body=body))
            return members
    except tarfile.TarError as exc:
        raise MalformedError(f"invalid tar archive: {exc}") from exc


def read_targz_file(data: bytes, path: str) -> Optional[bytes]:
    """Returns the body of one regular file inside a gzipped tarball, or None when absent."""
    try:
        raw = zlib.decompress(data, 16 + zlib.MAX_WBITS)
    except zlib.error as exc:
        raise MalformedError(f"invalid gzip stream: {exc}") from exc
    for member in read_tar(raw):
        if member.info.name == path and member.info.isreg():
            return member.body
    return None


def write_tar(members: List[TarMember]) -> bytes:
    out = io.BytesIO()
    with tarfile.open(fileobj=out, mode="w", format=tarfile.PAX_FORMAT) as archive:
        for member in members:
            info = member.info
            if info.isreg():
                info.size = len(member.body)
                archive.addfile(info, io.BytesIO(member.body))
            else:
                info.size = 0
                archive.addfile(info)
    return out.getvalue()


TarStabilizer = Callable[[List[TarMember]], List[TarMember]]


def stable_tar_file_order(members: List[TarMember]) -> List[TarMember]:
    return sorted(members, key=lambda member: member.info.name)


def stable_tar_time(members: List[TarMember]) -> List[TarMember]:
    for member in members:
        member.info.mtime = 0
    return members


def stable_tar_file_mode(members: List[TarMember]) -> List[TarMember]:
    for member in members:
        info = member.info
        if info.isdir():
            info.mode = _DIR_MODE
        elif info.issym() or info.islnk():
            info.mode = 0o777
        else:
            info.mode = _EXEC_MODE if info.mode & 0o111 else _FILE_MODE
    return members


def stable_tar_owners(members: List[TarMember]) -> List[TarMember]:
    for member in members:
        member.info.uid = 0
        member.info.gid = 0
        member.info.uname = ""
        member.info.gname = ""
    return members


def stable_tar_xattrs(members: List[TarMember]) -> List[TarMember]:
    for member in members:
        member.info.pax_headers = {}
    return members


def stable_tar_device_number(members: List[TarMember]) -> List[TarMember]:
    for member in members:
        member.info.devmajor = 0
        member.info.devminor = 0
    return members


def stable_cargo_vcs_hash(members: List[TarMember]) -> List[TarMember]:
    """Masks the commit recorded in `.cargo_vcs_info.json`."""
    for member in members:
        if not member.info.name.endswith(".cargo_vcs_info.json"):
            continue
        try:
            payload = json.loads(member.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            continue
        git = payload.get("git") if isinstance(payload, dict) else None
        if isinstance(git, dict) and "sha1" in git:
            git["sha1"] = _STABLE_VCS_SHA1
            member.body = (json.dumps(payload, indent=2, sort_keys=True) + "\n").encode("utf-8")
    return members


TAR_STABILIZERS: List[TarStabilizer] = [
    stable_tar_file_order,
    stable_tar_time,
    stable_tar_file_mode,
    stable_tar_owners,
    stable_tar_xattrs,
    stable_tar_device_number,
]


def stabilize_tar(data: bytes, extra: Sequence[TarStabilizer] = ()) -> bytes:
    members = read_tar(data)
    for stabilizer in [*TAR_STABILIZERS, *extra]:
        members = stabilizer(members)
    return write_tar(members)
