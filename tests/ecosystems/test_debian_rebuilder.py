import pytest

from oss_rebuild.adapters.registry.debian import DSC, DebianRegistry, parse_dsc, pool_url
from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.archive.ar import ArMember, write_ar
from oss_rebuild.core.domain.models import BuildEnv, Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import LocationHint
from oss_rebuild.core.domain.verdicts import VERDICT_CONTENT_DIFF, VERDICT_REBUILD_LARGER, VERDICT_UPSTREAM_LARGER
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.debian.rebuilder import DebianRebuilder, build_requirements, strategy_from_dsc
from oss_rebuild.ecosystems.debian.strategy import DebianPackage, FileWithChecksum
from oss_rebuild.exceptions import InferenceError, UnsupportedError

TARGET = Target(
    ecosystem=Ecosystem.DEBIAN,
    package="main/xz-utils",
    version="5.4.1-0.2",
    artifact="xz-utils_5.4.1-0.2_amd64.deb",
)
DSC_URL = "https://deb.debian.org/debian/pool/main/x/xz-utils/xz-utils_5.4.1-0.2.dsc"
QUILT_DSC = """Format: 3.0 (quilt)
Source: xz-utils
Version: 5.4.1-0.2
Build-Depends: debhelper-compat (= 13), dh-exec, autopoint <!stage1>
Files:
 aaaa 1000 xz-utils_5.4.1.orig.tar.xz
 bbbb 200 xz-utils_5.4.1-0.2.debian.tar.xz
"""


class FakeDebianRegistry(DebianRegistry):
    def __init__(self, text: str):
        self.text = text

    async def dsc(self, component, name, version):
        return DSC_URL, parse_dsc(self.text)

    async def artifact(self, component, name, artifact):
        return b"!<arch>\n"


@pytest.mark.asyncio
async def test_quilt_source_package():
    rebuilder = DebianRebuilder(RegistryMux(debian=FakeDebianRegistry(QUILT_DSC)))
    assert rebuilder.needs_repo is False
    assert await rebuilder.infer_repo(TARGET) == ""
    assert await rebuilder.guess_artifact(TARGET) == "xz-utils_5.4.1-0.2_amd64.deb"

    strategy = await rebuilder.infer_strategy(TARGET, None, RepoConfig())
    assert strategy == DebianPackage(
        dsc=FileWithChecksum(url=DSC_URL),
        orig=FileWithChecksum(url=pool_url("main", "xz-utils", "xz-utils_5.4.1.orig.tar.xz"), md5="aaaa"),
        debian=FileWithChecksum(url=pool_url("main", "xz-utils", "xz-utils_5.4.1-0.2.debian.tar.xz"), md5="bbbb"),
        requirements=["debhelper-compat", "dh-exec", "autopoint"],
    )

    inst = strategy.generate_for(TARGET, BuildEnv())
    assert inst.location == Location()
    assert inst.source.splitlines() == [
        "set -eux",
        f"wget {DSC_URL}",
        f"wget {strategy.orig.url}",
        f"wget {strategy.debian.url}",
        f'dpkg-source -x --no-check $(basename "{DSC_URL}")',
    ]
    assert "apt install -y debhelper-compat dh-exec autopoint" in inst.deps
    assert inst.build.endswith("debuild -b -uc -us")
    assert inst.output_path == TARGET.artifact


@pytest.mark.asyncio
async def test_hints_are_rejected():
    rebuilder = DebianRebuilder(RegistryMux(debian=FakeDebianRegistry(QUILT_DSC)))
    with pytest.raises(UnsupportedError):
        await rebuilder.infer_strategy(TARGET, None, RepoConfig(), LocationHint(location=Location(repo="https://salsa.debian.org/x", ref="x")))


def test_native_package_and_binary_only_upload():
    native = parse_dsc("Format: 3.0 (native)\nFiles:\n cccc 10 base-files_13.tar.xz\n")
    strategy = strategy_from_dsc("main", "base-files", "https://example/base-files_13.dsc", native)
    assert strategy.native.md5 == "cccc"
    assert not strategy.orig.url

    binnmu = TARGET.model_copy(update={"artifact": "xz-utils_5.4.1-0.2+b1_amd64.deb"})
    inst = strategy.generate_for(binnmu, BuildEnv())
    assert f"wget {strategy.native.url}" in inst.source
    assert inst.build.splitlines()[-1] == "mv /src/xz-utils_5.4.1-0.2_amd64.deb /src/xz-utils_5.4.1-0.2+b1_amd64.deb"


def test_dsc_without_sources_is_rejected():
    with pytest.raises(InferenceError, match="failed to find source files"):
        strategy_from_dsc("main", "x", DSC_URL, DSC())
    with pytest.raises(InferenceError, match="unexpected dsc File element"):
        strategy_from_dsc("main", "x", DSC_URL, parse_dsc("Files:\n aaaa x.orig.tar.gz\n"))
    with pytest.raises(InferenceError, match="multiple matches"):
        strategy_from_dsc("main", "x", DSC_URL, parse_dsc("Files:\n a 1 x_1.tar.gz\n b 2 x_2.tar.gz\n"))


def test_build_requirements():
    assert build_requirements("a (>= 1), b:any,  , c") == ["a", "b:any", "c"]


def _deb(body: bytes) -> bytes:
    return write_ar([ArMember(name_field=b"debian-binary", body=b"2.0\n"), ArMember(name_field=b"payload", body=body)])


def test_debian_comparison_is_by_size_then_bytes():
    rebuilder = DebianRebuilder(RegistryMux())
    assert rebuilder.compare(TARGET, _deb(b"abcd"), _deb(b"abcd")).verdict is None
    assert rebuilder.compare(TARGET, _deb(b"abcd"), _deb(b"abcdef")).verdict == VERDICT_REBUILD_LARGER
    assert rebuilder.compare(TARGET, _deb(b"abcdef"), _deb(b"abcd")).verdict == VERDICT_UPSTREAM_LARGER
    assert rebuilder.compare(TARGET, _deb(b"abcd"), _deb(b"abce")).verdict == VERDICT_CONTENT_DIFF
