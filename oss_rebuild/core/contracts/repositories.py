from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from oss_rebuild.core.domain.models import Asset
from oss_rebuild.exceptions import NotFoundError


@dataclass(frozen=True)
class Commit:
    sha: str
    parents: List[str] = field(default_factory=list)
    committed: Optional[datetime] = None


@dataclass(frozen=True)
class GrepMatch:
    file: str
    line: int


class Repo(ABC):
    """Read-only capability over a cloned repository snapshot."""

    uri: str = ""

    @abstractmethod
    async def resolve(self, ref: str) -> Optional[Commit]: ...

    @abstractmethod
    async def head(self) -> Commit: ...

    @abstractmethod
    async def read_file(self, ref: str, path: str) -> bytes: ...

    @abstractmethod
    async def list_dir(self, ref: str, path: str = "") -> List[str]: ...

    @abstractmethod
    async def grep(self, ref: str, pathspec_regex: str, pattern_regex: str) -> List[GrepMatch]: ...

    @abstractmethod
    async def log_touching(self, path: str) -> List[Commit]: ...

    @abstractmethod
    async def tags(self) -> Dict[str, str]: ...

    async def get_tree(self, ref: str) -> "Tree":
        commit = await self.resolve(ref)
        if commit is None:
            raise NotFoundError(f"ref not found: {ref}")
        return Tree(self, commit)

    async def close(self) -> None:
        return None


class Tree:
    """Snapshot of a repository at one commit."""

    def __init__(self, repo: Repo, commit: Commit):
        self.repo = repo
        self.commit = commit

    async def read_file(self, path: str) -> bytes:
        return await self.repo.read_file(self.commit.sha, path)

    async def list_dir(self, path: str = "") -> List[str]:
        return await self.repo.list_dir(self.commit.sha, path)

    async def find_entry(self, path: str) -> bool:
        parent, _, name = path.rstrip("/").rpartition("/")
        entries = await self.list_dir(parent)
        return name in entries or f"{name}/" in entries


class AssetStore(ABC):
    """Port for per-run artifact, log and metadata blobs."""

    @abstractmethod
    def writer(self, asset: Asset) -> "AssetWriter": ...

    @abstractmethod
    def reader(self, asset: Asset) -> "AssetReader": ...

    @abstractmethod
    def url(self, asset: Asset) -> str: ...

    async def write_bytes(self, asset: Asset, data: bytes) -> None:
        async with self.writer(asset) as handle:
            await handle.write(data)

    async def read_bytes(self, asset: Asset) -> bytes:
        async with self.reader(asset) as handle:
            return await handle.read()


class AssetWriter(ABC):
    @abstractmethod
    async def __aenter__(self) -> "AssetWriter": ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None: ...

    @abstractmethod
    async def write(self, data: bytes) -> None: ...


class AssetReader(ABC):
    @abstractmethod
    async def __aenter__(self) -> "AssetReader": ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None: ...

    @abstractmethod
    async def read(self) -> bytes: ...
