import pytest

from oss_rebuild.adapters.registry.maven import TYPE_JAR, TYPE_POM, MavenRegistry, MavenVersion
from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.core.domain.models import BuildEnv, Location, Target
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.maven.pom import DEFAULT_JDK, class_file_major_version, infer_jdk, jdk_major, parse_pom
from oss_rebuild.ecosystems.maven.rebuilder import MavenRebuilder, artifact_name
from oss_rebuild.ecosystems.maven.strategy import MavenBuild, jdk_download_url
from oss_rebuild.exceptions import InferenceError, MalformedError, NoValidRefError, NotFoundError

REPO_URI = "https://github.com/example/lib"
TARGET = Target(ecosystem=Ecosystem.MAVEN, package="org.example:lib", version="1.2.0", artifact="lib-1.2.0.jar")


def _pom(artifact, version="", parent_version="", scm=""):
    lines = ['<project xmlns="http://maven.apache.org/POM/4.0.0">']
    if parent_version:
        lines += ["  <parent>", "    <groupId>org.example</groupId>", f"    <version>{parent_version}</version>", "  </parent>"]
    else:
        lines.append("  <groupId>org.example</groupId>")
    lines.append(f"  <artifactId>{artifact}</artifactId>")
    if version:
        lines.append(f"  <version>{version}</version>")
    if scm:
        lines += ["  <scm>", f"    <url>{scm}</url>", "  </scm>"]
    lines.append("</project>")
    return "\n".join(lines)


class FakeMavenRegistry(MavenRegistry):
    def __init__(self, files):
        self.files = files

    async def package_version(self, pkg, version):
        return MavenVersion(g="org.example", a="lib", v=version)

    async def release_file(self, pkg, version, file_type):
        if file_type not in self.files:
            raise NotFoundError(f"{pkg}:{version}{file_type}")
        return self.files[file_type]


@pytest.fixture
def jar17(zipped):
    return zipped([("META-INF/MANIFEST.MF", b"Manifest-Version: 1.0\nBuild-Jdk-Spec: 17\n"), ("org/example/Lib.class", b"")])


@pytest.mark.asyncio
async def test_single_module_history(fake_repo, jar17):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"pom.xml": _pom("lib", "1.1.0")})
    repo.commit("c2", {"pom.xml": _pom("lib", "1.2.0")})
    repo.commit("c3", {"pom.xml": _pom("lib", "1.3.0-SNAPSHOT")})
    rebuilder = MavenRebuilder(RegistryMux(maven=FakeMavenRegistry({TYPE_JAR: jar17})))

    rcfg = await rebuilder.scan_repo(TARGET, repo)
    assert rcfg.dir == "."
    assert rcfg.ref_map == {"1.1.0": "c1", "1.2.0": "c2", "1.3.0-SNAPSHOT": "c3"}

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy == MavenBuild(location=Location(repo=REPO_URI, ref="c2", dir="."), jdk_version="17")

    repo.tag("lib-1.2.0", "c3")
    repo.tag("v1.2.0", "c3")
    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy.location.ref == "c3"


@pytest.mark.asyncio
async def test_multi_module_pom_is_found(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit(
        "c1",
        {
            "pom.xml": _pom("parent", "1.2.0"),
            "core/pom.xml": _pom("lib", parent_version="1.2.0"),
            "core/src/test/resources/pom.xml": _pom("lib", "0.0.1"),
        },
    )
    rebuilder = MavenRebuilder(RegistryMux(maven=FakeMavenRegistry({})))
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    assert rcfg.dir == "core"
    assert rcfg.ref_map == {"1.2.0": "c1"}

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy.location == Location(repo=REPO_URI, ref="c1", dir="core")
    assert strategy.jdk_version == DEFAULT_JDK


@pytest.mark.asyncio
async def test_no_refs(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"pom.xml": _pom("lib", "1.1.0")})
    rebuilder = MavenRebuilder(RegistryMux(maven=FakeMavenRegistry({})))
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    with pytest.raises(NoValidRefError, match="no git ref"):
        await rebuilder.infer_strategy(TARGET, repo, rcfg)


@pytest.mark.asyncio
async def test_repo_from_published_pom():
    pom = _pom("lib", "1.2.0", scm="https://github.com/example/lib.git").encode()
    rebuilder = MavenRebuilder(RegistryMux(maven=FakeMavenRegistry({TYPE_POM: pom})))
    assert await rebuilder.infer_repo(TARGET) == REPO_URI
    assert await rebuilder.guess_artifact(TARGET) == "lib-1.2.0.jar"

    bare = MavenRebuilder(RegistryMux(maven=FakeMavenRegistry({TYPE_POM: _pom("lib", "1.2.0").encode()})))
    with pytest.raises(NotFoundError, match="no git repo"):
        await bare.infer_repo(TARGET)


def test_pom_parsing_inherits_from_parent():
    pom = parse_pom(_pom("lib", parent_version="2.0.0").encode())
    assert pom.name == "org.example:lib"
    assert pom.version == "2.0.0"
    with pytest.raises(MalformedError):
        parse_pom(b"<project>")


def test_jdk_detection(zipped):
    assert jdk_major("1.8.0_121") == 8
    assert jdk_major("17.0.1") == 17
    assert jdk_major("unknown") is None
    assert class_file_major_version(b"\xca\xfe\xba\xbe\x00\x00\x00\x34") == 8
    with pytest.raises(MalformedError):
        class_file_major_version(b"\x00" * 8)

    from_class = zipped([("org/example/Lib.class", b"\xca\xfe\xba\xbe\x00\x00\x00\x3d")])
    assert infer_jdk(from_class) == "17"
    unsupported = zipped([("META-INF/MANIFEST.MF", b"Build-Jdk: 1.6.0_45\n")])
    assert infer_jdk(unsupported) == DEFAULT_JDK


def test_maven_build_instructions():
    strategy = MavenBuild(location=Location(repo=REPO_URI, ref="c1", dir="core"), jdk_version="1.8.0_121")
    inst = strategy.generate_for(TARGET, BuildEnv())
    assert jdk_download_url("1.8.0_121") in inst.deps
    assert inst.build.splitlines()[-1] == "mvn clean package -DskipTests --batch-mode -f core -Dmaven.javadoc.skip=true"
    assert inst.output_path == "core/target/lib-1.2.0.jar"
    assert artifact_name(TARGET) == "lib-1.2.0.jar"
    with pytest.raises(InferenceError):
        jdk_download_url("7")
