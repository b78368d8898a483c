import json

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.core.domain.models import Target
from oss_rebuild.core.domain.verdicts import (
    VERDICT_CARGO_VERSION,
    VERDICT_CARGO_VERSION_GIT,
    VERDICT_CONTENT_DIFF,
    VERDICT_LINE_ENDINGS,
    VERDICT_MISSING_DIST,
    VERDICT_PACKAGE_JSON_DIFF,
)
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.cratesio.rebuilder import CratesIORebuilder
from oss_rebuild.ecosystems.npm.rebuilder import NPMRebuilder

NPM_TARGET = Target(ecosystem=Ecosystem.NPM, package="test-package", version="1.0.0", artifact="test-package-1.0.0.tgz")
CRATE_TARGET = Target(ecosystem=Ecosystem.CRATESIO, package="serde", version="1.0.0", artifact="serde-1.0.0.crate")
MANIFEST = b'{"name": "test-package", "version": "1.0.0"}'


def test_identical_packages_match(targz):
    entries = [("package/package.json", MANIFEST), ("package/index.js", b"module.exports = 1;\n")]
    comparison = NPMRebuilder(RegistryMux()).compare(NPM_TARGET, targz(entries, mtime=5), targz(entries, mtime=9))
    assert comparison.verdict is None
    assert comparison.render().startswith("verdict: match\n")


def test_missing_dist_files(targz):
    rebuild = [("package/package.json", MANIFEST), ("package/index.js", b"")]
    upstream = rebuild + [("package/dist/bundle.js", b"compiled")]
    comparison = NPMRebuilder(RegistryMux()).compare(NPM_TARGET, targz(upstream), targz(rebuild))
    assert comparison.verdict == VERDICT_MISSING_DIST
    assert comparison.upstream_only == ["package/dist/bundle.js"]
    assert "- package/dist/bundle.js" in comparison.render()


def test_excess_crlf_in_upstream(targz):
    upstream = [("package/package.json", MANIFEST), ("package/index.js", b"line one\r\nline two\r\n")]
    rebuild = [("package/package.json", MANIFEST), ("package/index.js", b"line one\nline two\n")]
    comparison = NPMRebuilder(RegistryMux()).compare(NPM_TARGET, targz(upstream), targz(rebuild))
    assert comparison.verdict == VERDICT_LINE_ENDINGS
    assert comparison.upstream.crlf_count == 2
    assert comparison.rebuild.crlf_count == 0


def test_package_json_and_content_diffs(targz):
    rebuilder = NPMRebuilder(RegistryMux())
    base = [("package/package.json", MANIFEST), ("package/index.js", b"a")]
    changed_manifest = [("package/package.json", b"{}"), ("package/index.js", b"a")]
    changed_source = [("package/package.json", MANIFEST), ("package/index.js", b"b")]
    assert rebuilder.compare(NPM_TARGET, targz(base), targz(changed_manifest)).verdict == VERDICT_PACKAGE_JSON_DIFF
    assert rebuilder.compare(NPM_TARGET, targz(base), targz(changed_source)).verdict == VERDICT_CONTENT_DIFF


def _crate(targz, manifest, sha):
    vcs = json.dumps({"git": {"sha1": sha}, "path_in_vcs": ""}).encode()
    return targz(
        [
            ("serde-1.0.0/Cargo.toml", manifest),
            ("serde-1.0.0/Cargo.toml.orig", b'[package]\nname = "serde"\n'),
            ("serde-1.0.0/.cargo_vcs_info.json", vcs),
            ("serde-1.0.0/src/lib.rs", b"pub fn f() {}\n"),
        ]
    )


def test_cargo_generated_differences(targz):
    rebuilder = CratesIORebuilder(RegistryMux())
    built_ref = "a" * 40
    upstream = _crate(targz, b'[package]\nname = "serde"\nversion = "1.0.0"\n', built_ref)
    rebuild = _crate(targz, b'[package]\nversion = "1.0.0"\nname = "serde"\n', "b" * 40)

    assert rebuilder.compare(CRATE_TARGET, upstream, rebuild, ref=built_ref).verdict == VERDICT_CARGO_VERSION
    assert rebuilder.compare(CRATE_TARGET, upstream, rebuild, ref="c" * 40).verdict == VERDICT_CARGO_VERSION_GIT
    assert rebuilder.compare(CRATE_TARGET, upstream, upstream, ref=built_ref).verdict is None


def test_cargo_source_differences_are_content_diffs(targz):
    rebuilder = CratesIORebuilder(RegistryMux())
    upstream = _crate(targz, b"[package]\n", "a" * 40)
    rebuild = targz(
        [
            ("serde-1.0.0/Cargo.toml", b"[package]\n"),
            ("serde-1.0.0/Cargo.toml.orig", b'[package]\nname = "serde"\n'),
            ("serde-1.0.0/.cargo_vcs_info.json", json.dumps({"git": {"sha1": "a" * 40}, "path_in_vcs": ""}).encode()),
            ("serde-1.0.0/src/lib.rs", b"pub fn g() {}\n"),
        ]
    )
    assert rebuilder.compare(CRATE_TARGET, upstream, rebuild, ref="a" * 40).verdict == VERDICT_CONTENT_DIFF
