from __future__ import annotations

import asyncio
import os
import posixpath
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from oss_rebuild.adapters.vcs.uri import cache_key, canonicalize_repo_uri
from oss_rebuild.core.contracts.repositories import Commit, GrepMatch, Repo
from oss_rebuild.exceptions import InferenceError, NotFoundError, TransientError
from oss_rebuild.infrastructure.command_runner import CommandResult, CommandRunner
from oss_rebuild.infrastructure.keyed_locks import KeyedLocks
from oss_rebuild.logging import log_event


_COMMIT_FORMAT = "%H%x00%P%x00%ct"
_TRANSIENT_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection reset",
    "early eof",
    "the remote end hung up unexpectedly",
    "operation timed out",
)
_PRIVATE_MARKERS = (
    "authentication failed",
    "could not read username",
    "repository not found",
    "does not exist",
    "terminal prompts disabled",
)

_clone_locks = KeyedLocks()


def _normalize_path(path: str) -> str:
    cleaned = posixpath.normpath(str(path or "").strip().lstrip("/"))
    return "" if cleaned == "." else cleaned


def _parse_commit(line: str) -> Optional[Commit]:
    parts = line.split("\x00")
    if len(parts) != 3 or not parts[0]:
        return None
    sha, parents, timestamp = parts
    committed = datetime.fromtimestamp(int(timestamp), tz=timezone.utc) if timestamp.isdigit() else None
    return Commit(sha=sha, parents=parents.split() if parents else [], committed=committed)


def classify_clone_failure(uri: str, result: CommandResult) -> Exception:
    output = result.output.lower()
    if any(marker in output for marker in _PRIVATE_MARKERS):
        return NotFoundError(f"repo invalid or private: {uri}")
    if any(marker in output for marker in _TRANSIENT_MARKERS):
        return TransientError(f"clone failed: {uri}")
    first_line = next((line.strip() for line in result.output.splitlines() if line.strip()), "")
    return InferenceError(f"clone failed: {first_line}" if first_line else "clone failed")


class GitRepository(Repo):
    """
    Read-only view over a bare clone, driven through the `git` CLI.

    Clones are cached under `cache_root/<key>` and refreshed with a fetch on
    reuse. Ephemeral clones live in a temporary directory released by
    `close()`.
    """

    def __init__(self, uri: str, git_dir: Path, runner: Optional[CommandRunner] = None, *, ephemeral: bool = False):
        self.uri = uri
        self.git_dir = Path(git_dir)
        self.runner = runner or CommandRunner()
        self.ephemeral = ephemeral
        self._closed = False

    @classmethod
    async def clone(
        cls,
        raw_uri: str,
        cache_root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
        *,
        timeout: Optional[float] = 600.0,
    ) -> "GitRepository":
        uri = canonicalize_repo_uri(raw_uri)
        runner = runner or CommandRunner()
        if cache_root is None:
            git_dir = Path(tempfile.mkdtemp(prefix="oss-rebuild-repo-")) / "repo.git"
            repo = cls(uri, git_dir, runner, ephemeral=True)
            await repo._clone(timeout)
            return repo

        git_dir = Path(cache_root) / f"{cache_key(uri)}.git"
        async with _clone_locks.hold(str(git_dir)):
            repo = cls(uri, git_dir, runner)
            if (git_dir / "HEAD").exists():
                await repo._fetch(timeout)
            else:
                await repo._clone(timeout)
        return repo

    async def _clone(self, timeout: Optional[float]) -> None:
        self.git_dir.parent.mkdir(parents=True, exist_ok=True)
        if self.git_dir.exists():
            shutil.rmtree(self.git_dir)
        try:
            result = await self.runner.run(
                "git", "clone", "--bare", "--quiet", self.uri, str(self.git_dir),
                env=_git_env(), timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            shutil.rmtree(self.git_dir, ignore_errors=True)
            raise TransientError(f"clone timed out: {self.uri}") from exc
        if not result.ok:
            if self.git_dir.exists():
                shutil.rmtree(self.git_dir, ignore_errors=True)
            raise classify_clone_failure(self.uri, result)
        log_event("repo_cloned", uri=self.uri, path=str(self.git_dir))

    async def _fetch(self, timeout: Optional[float]) -> None:
        try:
            result = await self.runner.run(
                "git", "--git-dir", str(self.git_dir), "fetch", "--quiet", "--tags", "--force", "--prune",
                "origin", "+refs/heads/*:refs/heads/*",
                env=_git_env(), timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientError(f"fetch timed out: {self.uri}") from exc
        if not result.ok:
            raise classify_clone_failure(self.uri, result)
        log_event("repo_reused", uri=self.uri, path=str(self.git_dir))

    async def _git(self, *args: str) -> CommandResult:
        return await self.runner.run("git", "--git-dir", str(self.git_dir), *args, env=_git_env())

    async def resolve(self, ref: str) -> Optional[Commit]:
        if not ref or ref.startswith("-"):
            return None
        result = await self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        if not result.ok:
            return None
        sha = result.text.strip()
        shown = await self._git("show", "-s", f"--format={_COMMIT_FORMAT}", sha)
        if not shown.ok:
            return None
        return _parse_commit(shown.text.strip())

    async def head(self) -> Commit:
        commit = await self.resolve("HEAD")
        if commit is None:
            raise NotFoundError(f"repository has no HEAD: {self.uri}")
        return commit

    async def read_file(self, ref: str, path: str) -> bytes:
        normalized = _normalize_path(path)
        if not normalized:
            raise NotFoundError("cannot read the repository root as a file")
        result = await self._git("cat-file", "blob", f"{ref}:{normalized}")
        if not result.ok:
            raise NotFoundError(f"file not found: {normalized}@{ref}")
        return result.stdout

    async def list_dir(self, ref: str, path: str = "") -> List[str]:
        normalized = _normalize_path(path)
        args = ["ls-tree", "-z", ref]
        if normalized:
            args.append(normalized + "/")
        result = await self._git(*args)
        if not result.ok:
            raise NotFoundError(f"tree not found: {normalized or '.'}@{ref}")
        entries: List[str] = []
        for record in result.stdout.decode("utf-8", errors="replace").split("\x00"):
            if not record:
                continue
            meta, _, name = record.partition("\t")
            kind = meta.split(" ")[1] if meta.count(" ") >= 2 else ""
            base = posixpath.basename(name)
            entries.append(f"{base}/" if kind == "tree" else base)
        return sorted(entries)

    async def grep(self, ref: str, pathspec_regex: str, pattern_regex: str) -> List[GrepMatch]:
        path_filter = re.compile(pathspec_regex) if pathspec_regex else None
        result = await self._git("grep", "-n", "-I", "-z", "-E", "-e", pattern_regex, ref)
        if result.returncode == 1:
            return []
        if not result.ok:
            raise InferenceError(f"grep failed: {result.output.strip()}")
        matches: List[GrepMatch] = []
        prefix = f"{ref}:"
        for line in result.stdout.decode("utf-8", errors="replace").splitlines():
            # With -z the layout is `<ref>:<path>\0<line>\0<text>`.
            fields = line.split("\x00")
            if len(fields) < 2:
                continue
            file_path = fields[0][len(prefix):] if fields[0].startswith(prefix) else fields[0]
            if path_filter is not None and not path_filter.search(file_path):
                continue
            if not fields[1].isdigit():
                continue
            matches.append(GrepMatch(file=file_path, line=int(fields[1])))
        return matches

    async def log_touching(self, path: str) -> List[Commit]:
        """Commits touching `path` across all refs, newest committer time first."""
        normalized = _normalize_path(path)
        result = await self._git("log", "--all", "--date-order", f"--format={_COMMIT_FORMAT}", "--", normalized)
        if not result.ok:
            raise InferenceError(f"log failed: {result.output.strip()}")
        commits = [_parse_commit(line) for line in result.text.splitlines() if line.strip()]
        return [commit for commit in commits if commit is not None]

    async def tags(self) -> Dict[str, str]:
        result = await self._git(
            "for-each-ref", "--format=%(refname:short)%00%(objectname)%00%(*objectname)", "refs/tags",
        )
        if not result.ok:
            raise InferenceError(f"listing tags failed: {result.output.strip()}")
        found: Dict[str, str] = {}
        for line in result.text.splitlines():
            parts = line.split("\x00")
            if len(parts) != 3 or not parts[0]:
                continue
            name, sha, peeled = parts
            found[name] = peeled or sha
        return found

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.ephemeral:
            shutil.rmtree(self.git_dir.parent, ignore_errors=True)


def _git_env() -> Dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "true")
    return env
