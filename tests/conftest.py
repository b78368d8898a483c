import io
import json
import re
import tarfile
import zipfile
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from oss_rebuild.core.contracts.repositories import Commit, GrepMatch, Repo
from oss_rebuild.exceptions import NotFoundError

BASE_TIME = datetime(2023, 1, 1, tzinfo=timezone.utc)


class FakeRepo(Repo):
    """In-memory repository: each commit is a full snapshot of its files."""

    def __init__(self, uri: str = "https://github.com/example/repo"):
        self.uri = uri
        self.commits: Dict[str, Commit] = {}
        self.files: Dict[str, Dict[str, bytes]] = {}
        self.order: List[str] = []
        self.tag_map: Dict[str, str] = {}
        self.closed = False

    def commit(self, sha: str, files: Dict[str, object], parents: Optional[List[str]] = None) -> "FakeRepo":
        if parents is None:
            parents = [self.order[-1]] if self.order else []
        committed = BASE_TIME + timedelta(hours=len(self.order))
        self.commits[sha] = Commit(sha=sha, parents=list(parents), committed=committed)
        snapshot: Dict[str, bytes] = {}
        for path, body in files.items():
            if isinstance(body, (dict, list)):
                body = json.dumps(body)
            snapshot[path] = body.encode("utf-8") if isinstance(body, str) else body
        self.files[sha] = snapshot
        self.order.append(sha)
        return self

    def tag(self, name: str, sha: str) -> "FakeRepo":
        self.tag_map[name] = sha
        return self

    async def resolve(self, ref: str) -> Optional[Commit]:
        if ref in self.commits:
            return self.commits[ref]
        if ref in self.tag_map:
            return self.commits[self.tag_map[ref]]
        return None

    async def head(self) -> Commit:
        if not self.order:
            raise NotFoundError("empty repository")
        return self.commits[self.order[-1]]

    async def read_file(self, ref: str, path: str) -> bytes:
        commit = await self.resolve(ref)
        normalized = path[2:] if path.startswith("./") else path
        if commit is None or normalized not in self.files[commit.sha]:
            raise NotFoundError(f"file not found: {path}@{ref}")
        return self.files[commit.sha][normalized]

    async def list_dir(self, ref: str, path: str = "") -> List[str]:
        commit = await self.resolve(ref)
        if commit is None:
            raise NotFoundError(f"tree not found: {ref}")
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        entries = set()
        for name in self.files[commit.sha]:
            if not name.startswith(prefix):
                continue
            head, sep, _ = name[len(prefix):].partition("/")
            entries.add(f"{head}/" if sep else head)
        return sorted(entries)

    async def grep(self, ref: str, pathspec_regex: str, pattern_regex: str) -> List[GrepMatch]:
        commit = await self.resolve(ref)
        if commit is None:
            return []
        path_filter = re.compile(pathspec_regex) if pathspec_regex else None
        pattern = re.compile(pattern_regex)
        matches: List[GrepMatch] = []
        for name, body in sorted(self.files[commit.sha].items()):
            if path_filter is not None and not path_filter.search(name):
                continue
            for number, line in enumerate(body.decode("utf-8", errors="replace").splitlines(), start=1):
                if pattern.search(line):
                    matches.append(GrepMatch(file=name, line=number))
        return matches

    async def log_touching(self, path: str) -> List[Commit]:
        touching: List[Commit] = []
        for sha in reversed(self.order):
            commit = self.commits[sha]
            body = self.files[sha].get(path)
            if body is None:
                continue
            parents = [self.files[parent].get(path) for parent in commit.parents]
            if not parents or any(previous != body for previous in parents):
                touching.append(commit)
        return touching

    async def tags(self) -> Dict[str, str]:
        return dict(self.tag_map)

    async def close(self) -> None:
        self.closed = True


def make_targz(entries: Iterable[Tuple[str, bytes]], mtime: int = 0) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, body in entries:
            info = tarfile.TarInfo(name)
            info.size = len(body)
            info.mtime = mtime
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(body))
    return buffer.getvalue()


def make_zip(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, body in entries:
            archive.writestr(zipfile.ZipInfo(name, date_time=(2020, 1, 1, 0, 0, 0)), body)
    return buffer.getvalue()


@pytest.fixture
def fake_repo():
    return FakeRepo


@pytest.fixture
def targz():
    return make_targz


@pytest.fixture
def zipped():
    return make_zip
