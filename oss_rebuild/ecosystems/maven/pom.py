"""
Minimal pom.xml model and JDK detection from published jars.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ElementTree
from dataclasses import dataclass
from typing import Optional

from oss_rebuild.archive.zip import read_zip
from oss_rebuild.exceptions import MalformedError

DEFAULT_JDK = "11"
# Majors with a published Temurin GA build for linux/x64.
SUPPORTED_JDK_MAJORS = (8, 11, 16, 17, 18, 19, 20, 21, 22, 23, 24, 25)

_CLASS_MAGIC = b"\xca\xfe\xba\xbe"
_MANIFEST = "META-INF/MANIFEST.MF"
_JDK_ATTRIBUTES = ("Build-Jdk-Spec", "Build-Jdk")


@dataclass
class PomXML:
    group_id: str = ""
    artifact_id: str = ""
    version_id: str = ""
    url: str = ""
    scm_url: str = ""
    parent_group_id: str = ""
    parent_version_id: str = ""

    @property
    def group(self) -> str:
        return self.group_id or self.parent_group_id

    @property
    def name(self) -> str:
        return f"{self.group}:{self.artifact_id}"

    @property
    def version(self) -> str:
        return self.version_id or self.parent_version_id

    @property
    def repo(self) -> str:
        return self.scm_url or self.url


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ElementTree.Element, name: str) -> str:
    for child in element:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return ""


def _child(element: ElementTree.Element, name: str) -> Optional[ElementTree.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def parse_pom(raw: bytes) -> PomXML:
    try:
        root = ElementTree.fromstring(raw)
    except ElementTree.ParseError as exc:
        raise MalformedError(f"failed to parse pom.xml: {exc}") from exc
    pom = PomXML(
        group_id=_child_text(root, "groupId"),
        artifact_id=_child_text(root, "artifactId"),
        version_id=_child_text(root, "version"),
        url=_child_text(root, "url"),
    )
    scm = _child(root, "scm")
    if scm is not None:
        pom.scm_url = _child_text(scm, "url")
    parent = _child(root, "parent")
    if parent is not None:
        pom.parent_group_id = _child_text(parent, "groupId")
        pom.parent_version_id = _child_text(parent, "version")
    return pom


def jdk_major(version: str) -> Optional[int]:
    """`1.8.0_121` -> 8, `17.0.1` -> 17; None when unparseable."""
    match = re.match(r"^(\d+)(?:\.(\d+))?", version.strip())
    if match is None:
        return None
    major = int(match.group(1))
    if major == 1 and match.group(2):
        major = int(match.group(2))
    return major


def class_file_major_version(body: bytes) -> int:
    """Java release that compiled a class file, from its header."""
    if len(body) < 8:
        raise MalformedError("class file too short")
    if body[:4] != _CLASS_MAGIC:
        raise MalformedError("invalid class file magic")
    return int.from_bytes(body[6:8], "big") - 44


def infer_jdk(jar: bytes) -> str:
    """
    JDK that built a jar: the manifest's Build-Jdk-Spec or Build-Jdk, then
    the first class file's version, then the default. Unsupported majors
    fall back to the default.
    """
    members = read_zip(jar)
    candidates = []
    manifest = next((member.body for member in members if member.name == _MANIFEST), b"")
    for line in manifest.decode("utf-8", errors="replace").splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() in _JDK_ATTRIBUTES and value.strip():
            candidates.append(value.strip())
            break
    for member in members:
        if member.name.endswith(".class"):
            try:
                candidates.append(str(class_file_major_version(member.body)))
            except MalformedError:
                continue
            break
    for candidate in candidates:
        major = jdk_major(candidate)
        if major in SUPPORTED_JDK_MAJORS:
            return candidate
    return DEFAULT_JDK
