from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from typing import Callable, List, Sequence

from oss_rebuild.exceptions import MalformedError

_DOS_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass
class ZipMember:
    name: str
    body: bytes = b""
    date_time: tuple = _DOS_EPOCH
    compress_type: int = zipfile.ZIP_STORED
    external_attr: int = 0
    create_system: int = 0
    comment: bytes = b""
    extra: bytes = b""

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")


def read_zip(data: bytes) -> List[ZipMember]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return [
                ZipMember(
                    name=info.filename,
                    body=b"" if info.is_dir() else archive.read(info),
                    date_time=info.date_time,
                    compress_type=info.compress_type,
                    external_attr=info.external_attr,
                    create_system=info.create_system,
                    comment=info.comment,
                    extra=info.extra,
                )
                for info in archive.infolist()
            ]
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError) as exc:
        raise MalformedError(f"invalid zip archive: {exc}") from exc


def write_zip(members: List[ZipMember]) -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(out, mode="w") as archive:
        for member in members:
            info = zipfile.ZipInfo(member.name, date_time=member.date_time)
            info.compress_type = member.compress_type
            info.external_attr = member.external_attr
            info.create_system = member.create_system
            info.comment = member.comment
            info.extra = member.extra
            archive.writestr(info, member.body)
    return out.getvalue()


ZipStabilizer = Callable[[List[ZipMember]], List[ZipMember]]


def stable_zip_file_order(members: List[ZipMember]) -> List[ZipMember]:
    return sorted(members, key=lambda member: member.name)


def stable_zip_modified_time(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        member.date_time = _DOS_EPOCH
    return members


def stable_zip_compression(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        member.compress_type = zipfile.ZIP_STORED
    return members


def stable_zip_file_mode(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        member.create_system = 0
        member.external_attr = 0x10 if member.is_dir else 0
    return members


def stable_zip_misc(members: List[ZipMember]) -> List[ZipMember]:
    for member in members:
        member.comment = b""
        member.extra = b""
    return members


ZIP_STABILIZERS: List[ZipStabilizer] = [
    stable_zip_file_order,
    stable_zip_modified_time,
    stable_zip_compression,
    stable_zip_file_mode,
    stable_zip_misc,
]


def stabilize_zip(data: bytes, extra: Sequence[ZipStabilizer] = ()) -> bytes:
    """
    Rewrites a zip with canonical entry metadata.

    Entries are written from memory into a seekable buffer, so no data
    descriptors are emitted, and the archive comment is dropped.
    """
    members = read_zip(data)
    for stabilizer in [*ZIP_STABILIZERS, *extra]:
        members = stabilizer(members)
    return write_zip(members)
