from __future__ import annotations

import re
from urllib.parse import urlsplit

from oss_rebuild.exceptions import MalformedError

_SHORTHAND_HOSTS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}
_OWNER_REPO_HOSTS = {"github.com", "gitlab.com", "bitbucket.org"}
_SCP_LIKE = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>(?!//)[^\s]+)$")
_BARE_OWNER_REPO = re.compile(r"^[\w.-]+/[\w.-]+$")


def canonicalize_repo_uri(raw: str) -> str:
    """
    Normalizes the many spellings of a repository URL to `https://host/path`.

    Handles `git+` prefixes, `git://` and ssh forms, scp-like `git@host:path`,
    npm-style `github:owner/repo` and bare `owner/repo` shorthands, a trailing
    `.git`, and deep links into well-known forges.
    """
    value = str(raw or "").strip()
    if not value:
        raise MalformedError("empty repository URL")
    value = value.split("#", 1)[0]
    if value.startswith("git+"):
        value = value[len("git+"):]

    for prefix, host in _SHORTHAND_HOSTS.items():
        if value.startswith(prefix + ":") and not value.startswith(prefix + "://"):
            value = f"https://{host}/{value[len(prefix) + 1:]}"
            break
    else:
        if _BARE_OWNER_REPO.match(value):
            value = f"https://github.com/{value}"
        elif "://" not in value:
            scp = _SCP_LIKE.match(value)
            if scp is None:
                raise MalformedError(f"unsupported repository URL: {raw}")
            value = f"https://{scp.group('host')}/{scp.group('path')}"

    parts = urlsplit(value)
    if parts.scheme not in {"http", "https", "git", "ssh", "git+ssh"}:
        raise MalformedError(f"unsupported repository URL scheme: {raw}")
    host = (parts.hostname or "").lower()
    if not host:
        raise MalformedError(f"repository URL has no host: {raw}")
    path = parts.path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if host in _OWNER_REPO_HOSTS:
        path = "/".join(path.split("/")[:2])
        if path.endswith(".git"):
            path = path[: -len(".git")]
    if not path:
        raise MalformedError(f"repository URL has no path: {raw}")
    return f"https://{host}/{path}"


def cache_key(uri: str) -> str:
    """Filesystem-safe directory name for a canonical repository URL."""
    stripped = re.sub(r"^[a-z+]+://", "", uri)
    return re.sub(r"[^A-Za-z0-9._-]+", "_", stripped).strip("_")


_COMMON_REPOS = (
    re.compile(r"github\.com/[\w.-]+/[\w.-]+"),
    re.compile(r"gitlab\.com/[\w.-]+/[\w.-]+"),
    re.compile(r"bitbucket\.org/[\w.-]+/[\w.-]+"),
)


def find_common_repo(text: str) -> str:
    """Returns the first well-known forge repository mentioned in `text`, or ""."""
    for pattern in _COMMON_REPOS:
        found = pattern.search(text or "")
        if found is not None:
            return "https://" + found.group(0)
    return ""
