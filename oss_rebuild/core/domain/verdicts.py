"""
Closed set of comparison verdicts and the normative classification order.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence

VERDICT_MISSING_DIST = "dist/ file(s) found in upstream but not rebuild"
VERDICT_DS_STORE = ".DS_STORE file(s) found in upstream but not rebuild"
VERDICT_LINE_ENDINGS = "Excess CRLF line endings found in upstream"
VERDICT_MISMATCHED_FILES = "mismatched file(s) in upstream and rebuild"
VERDICT_UPSTREAM_ONLY = "file(s) found in upstream but not rebuild"
VERDICT_HIDDEN_UPSTREAM_ONLY = "hidden file(s) found in upstream but not rebuild"
VERDICT_REBUILD_ONLY = "file(s) found in rebuild but not upstream"
VERDICT_PACKAGE_JSON_DIFF = "package.json differences found"
VERDICT_CONTENT_DIFF = "content differences found"
VERDICT_CARGO_VERSION = "only cargo-generated files differ"
VERDICT_CARGO_VERSION_GIT = "only cargo-generated files and git ref differ"
VERDICT_REBUILD_LARGER = "rebuild is larger than upstream"
VERDICT_UPSTREAM_LARGER = "upstream is larger than rebuild"

ALL_VERDICTS = (
    VERDICT_MISSING_DIST,
    VERDICT_DS_STORE,
    VERDICT_LINE_ENDINGS,
    VERDICT_MISMATCHED_FILES,
    VERDICT_UPSTREAM_ONLY,
    VERDICT_HIDDEN_UPSTREAM_ONLY,
    VERDICT_REBUILD_ONLY,
    VERDICT_PACKAGE_JSON_DIFF,
    VERDICT_CONTENT_DIFF,
    VERDICT_CARGO_VERSION,
    VERDICT_CARGO_VERSION_GIT,
    VERDICT_REBUILD_LARGER,
    VERDICT_UPSTREAM_LARGER,
)

# Stage tags prefixed onto non-comparison failures.
STAGE_INFERENCE = "inference"
STAGE_FETCHING_UPSTREAM = "fetching_upstream"
STAGE_BUILD = "build"
STAGE_COMPARE = "compare"


class Summary(Protocol):
    crlf_count: int


def classify(
    upstream: Summary,
    rebuild: Summary,
    upstream_only: Sequence[str],
    diffs: Sequence[str],
    rebuild_only: Sequence[str],
) -> Optional[str]:
    """Returns the first matching verdict in priority order, or None on a clean match."""
    found_dist = any(path.startswith("package/dist/") for path in upstream_only)
    found_ds_store = any(path.endswith("/.DS_STORE") for path in upstream_only)
    all_hidden = all(path.startswith("package/.") for path in upstream_only)

    if found_dist:
        return VERDICT_MISSING_DIST
    if found_ds_store:
        return VERDICT_DS_STORE
    if upstream.crlf_count > rebuild.crlf_count:
        return VERDICT_LINE_ENDINGS
    if upstream_only and rebuild_only:
        return VERDICT_MISMATCHED_FILES
    if upstream_only:
        return VERDICT_HIDDEN_UPSTREAM_ONLY if all_hidden else VERDICT_UPSTREAM_ONLY
    if rebuild_only:
        return VERDICT_REBUILD_ONLY
    if "package/package.json" in diffs:
        return VERDICT_PACKAGE_JSON_DIFF
    if diffs:
        return VERDICT_CONTENT_DIFF
    return None


def stage_message(stage: str, error: object) -> str:
    """One-line failure message tagged with the stage that produced it. Detail past the first line stays in the logs."""
    text = str(error).strip().splitlines()[0] if str(error).strip() else type(error).__name__
    return f"{stage}: {text}"


def stage_of(message: str) -> str:
    """Recovers the stage tag from a verdict message; empty for comparison verdicts."""
    if message in ALL_VERDICTS:
        return STAGE_COMPARE
    head, sep, _ = message.partition(":")
    if sep and head in {STAGE_INFERENCE, STAGE_FETCHING_UPSTREAM, STAGE_BUILD, STAGE_COMPARE}:
        return head
    return ""
