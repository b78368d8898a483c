"""
SemVer 2.0 parsing and ordering used for tool-version selection.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Tuple, Union

from oss_rebuild.exceptions import InvalidSemver

_IDENT = r"(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    rf"(?:-(?P<prerelease>{_IDENT}(?:\.{_IDENT})*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _identifier_cmp(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        return _cmp(int(a), int(b))
    if a_num:
        return -1
    if b_num:
        return 1
    return _cmp(a, b)


def prerelease_cmp(a: str, b: str) -> int:
    """Compares prerelease strings. An absent prerelease outranks any present one."""
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    a_parts, b_parts = a.split("."), b.split(".")
    for left, right in zip(a_parts, b_parts):
        result = _identifier_cmp(left, right)
        if result:
            return result
    return _cmp(len(a_parts), len(b_parts))


@total_ordering
@dataclass(frozen=True)
class Semver:
    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = ""

    @classmethod
    def parse(cls, value: str) -> "Semver":
        match = _SEMVER_RE.match(str(value or ""))
        if match is None:
            raise InvalidSemver(f"Invalid semver: {value!r}")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("prerelease") or "",
            build=match.group("build") or "",
        )

    @property
    def core(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def compare(self, other: "Semver") -> int:
        result = _cmp(self.core, other.core)
        if result:
            return result
        return prerelease_cmp(self.prerelease, other.prerelease)

    # Equality ignores build metadata so that ordering and equality agree.
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Semver):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Semver") -> bool:
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash((self.core, self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse(value: str) -> Semver:
    return Semver.parse(value)


def cmp(a: Union[str, Semver], b: Union[str, Semver]) -> int:
    left = a if isinstance(a, Semver) else Semver.parse(a)
    right = b if isinstance(b, Semver) else Semver.parse(b)
    return left.compare(right)


def is_valid(value: str) -> bool:
    return _SEMVER_RE.match(str(value or "")) is not None
