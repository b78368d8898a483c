"""
Inference helpers shared across ecosystems.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location
from oss_rebuild.core.domain.strategies import LocationHint, Strategy
from oss_rebuild.exceptions import UnsupportedError
from oss_rebuild.logging import log_event


def tag_version(tag: str, pkg: str) -> str:
    """Strips a leading `v`, `<pkg>-` or `<pkg>@` (or the unscoped tail) from a tag name."""
    names = [pkg, pkg.rsplit("/", 1)[1]] if "/" in pkg else [pkg]
    for prefix in [f"{name}{sep}" for name in names for sep in ("-", "@")]:
        if tag.startswith(prefix):
            tag = tag[len(prefix):]
            break
    if tag.startswith("v") and len(tag) > 1 and tag[1].isdigit():
        tag = tag[1:]
    return tag


async def find_tag_match(repo: Repo, pkg: str, version: str) -> str:
    """
    Returns the commit of the tag naming `version`, or "" when none does.

    Ties prefer a tag spelled exactly as the version, then the newest
    commit, then the lexicographically smallest tag name.
    """
    tags = await repo.tags()
    matches: List[Tuple[str, str]] = []
    near: List[str] = []
    for name, sha in tags.items():
        if tag_version(name, pkg) == version:
            matches.append((name, sha))
        elif version in name:
            near.append(name)
    if near:
        log_event("tag_near_matches", pkg=pkg, version=version, tags=sorted(near))
    if not matches:
        return ""
    if len(matches) == 1:
        return matches[0][1]

    ranked = []
    for name, sha in matches:
        commit = await repo.resolve(sha)
        committed = commit.committed.timestamp() if commit is not None and commit.committed else 0.0
        ranked.append((0 if name == version else 1, -committed, name, sha))
    ranked.sort()
    log_event("tag_multiple_matches", pkg=pkg, version=version, tags=[item[2] for item in ranked], picked=ranked[0][2])
    return ranked[0][3]


def hint_location(hint: Optional[Strategy]) -> Optional[Location]:
    """Returns the forced location of a LocationHint carrying a ref."""
    if hint is None:
        return None
    if not isinstance(hint, LocationHint):
        raise UnsupportedError(f"unsupported hint type: {type(hint).__name__}")
    return hint.location if hint.location.ref else None


def short_ref(ref: str) -> str:
    return ref[:9]
