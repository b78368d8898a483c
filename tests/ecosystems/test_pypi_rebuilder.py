from datetime import datetime, timezone

import pytest

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.adapters.registry.pypi import Artifact, Project, PyPIRegistry, Release
from oss_rebuild.core.domain.models import BuildEnv, Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import LocationHint
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.pypi.rebuilder import (
    PyPIRebuilder,
    find_pure_wheel,
    generator_requirements,
    pyproject_requirements,
    repo_from_project_urls,
    setuptools_requirement,
)
from oss_rebuild.ecosystems.pypi.strategy import PureWheelBuild
from oss_rebuild.exceptions import InferenceError, NoValidRefError, NotFoundError, UnsupportedError

REPO_URI = "https://github.com/abseil/abseil-py"
WHEEL = "absl_py-2.0.0-py3-none-any.whl"
TARGET = Target(ecosystem=Ecosystem.PYPI, package="absl-py", version="2.0.0", artifact=WHEEL)
UPLOADED = datetime(2023, 9, 20, 10, 0, 0, tzinfo=timezone.utc)


class FakePyPIRegistry(PyPIRegistry):
    def __init__(self, wheel: bytes, project_urls=None):
        self.wheel = wheel
        self.project_urls = project_urls or {}

    async def project(self, pkg):
        return Project.model_validate({"info": {"name": pkg, "project_urls": self.project_urls}})

    async def release(self, pkg, version):
        return Release.model_validate(
            {
                "info": {"name": pkg, "version": version},
                "urls": [
                    {"filename": "absl-py-2.0.0.tar.gz", "packagetype": "sdist"},
                    {"filename": WHEEL, "packagetype": "bdist_wheel", "upload_time_iso_8601": "2023-09-20T10:00:00Z"},
                ],
            }
        )

    async def artifact(self, pkg, version, filename):
        if filename != WHEEL:
            raise NotFoundError(filename)
        return self.wheel


@pytest.fixture
def upstream_wheel(zipped):
    return zipped(
        [
            ("absl/__init__.py", b""),
            ("absl_py-2.0.0.dist-info/WHEEL", b"Wheel-Version: 1.0\nGenerator: bdist_wheel (0.37.1)\nRoot-Is-Purelib: true\n"),
            ("absl_py-2.0.0.dist-info/METADATA", b"Metadata-Version: 2.1\nName: absl-py\n"),
        ]
    )


@pytest.mark.asyncio
async def test_infers_pinned_backend_from_tag(fake_repo, upstream_wheel):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"setup.py": "setup()"})
    repo.commit("c2", {"setup.py": "setup()", "pyproject.toml": '[build-system]\nrequires = ["setuptools >= 40", "wheel"]\n'})
    repo.tag("v2.0.0", "c2")
    rebuilder = PyPIRebuilder(RegistryMux(pypi=FakePyPIRegistry(upstream_wheel)))

    strategy = await rebuilder.infer_strategy(TARGET, repo, RepoConfig(uri=REPO_URI))
    assert strategy == PureWheelBuild(
        location=Location(repo=REPO_URI, ref="c2", dir="."),
        requirements=["wheel==0.37.1", "setuptools==56.2.0", "setuptools>=40", "wheel"],
        registry_time=UPLOADED,
    )

    inst = strategy.generate_for(TARGET, BuildEnv(timewarp_host="timewarp:8081"))
    assert "export PIP_INDEX_URL=http://pypi:2023-09-20T10:00:00Z@timewarp:8081" in inst.deps
    assert inst.build == "/deps/bin/python3 -m build --wheel -n ."
    assert inst.output_path == f"dist/{WHEEL}"


@pytest.mark.asyncio
async def test_missing_tag_and_hint(fake_repo, upstream_wheel):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"setup.py": "setup()"})
    rebuilder = PyPIRebuilder(RegistryMux(pypi=FakePyPIRegistry(upstream_wheel)))
    rcfg = RepoConfig(uri=REPO_URI)
    with pytest.raises(NoValidRefError, match="no git ref"):
        await rebuilder.infer_strategy(TARGET, repo, rcfg)

    hint = LocationHint(location=Location(repo=REPO_URI, ref="c1", dir="src"))
    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg, hint)
    assert strategy.location == Location(repo=REPO_URI, ref="c1", dir="src")
    assert strategy.requirements == ["wheel==0.37.1", "setuptools==56.2.0"]


@pytest.mark.asyncio
async def test_repo_and_artifact_guess(upstream_wheel):
    registry = FakePyPIRegistry(upstream_wheel, {"Homepage": "https://abseil.io", "Source": "https://github.com/abseil/abseil-py/tree/main"})
    rebuilder = PyPIRebuilder(RegistryMux(pypi=registry))
    assert await rebuilder.infer_repo(TARGET) == REPO_URI
    assert await rebuilder.guess_artifact(TARGET) == WHEEL
    assert await rebuilder.upstream_artifact(TARGET) == upstream_wheel


def test_repo_from_project_urls_fallbacks():
    assert repo_from_project_urls({}, "see https://github.com/org/proj for details") == "https://github.com/org/proj"
    assert repo_from_project_urls({"Funding": "https://github.com/sponsors/org", "Docs": "https://gitlab.com/org/proj"}) == "https://gitlab.com/org/proj"
    with pytest.raises(NotFoundError):
        repo_from_project_urls({"Homepage": "https://example.com"})


def test_generator_requirements():
    assert generator_requirements("Generator: flit 3.9.0\n") == ["flit_core==3.9.0", "flit==3.9.0"]
    assert generator_requirements("Wheel-Version: 1.0\nGenerator: hatchling 1.18.0\n") == ["hatchling==1.18.0"]
    with pytest.raises(UnsupportedError):
        generator_requirements("Generator: maturin (1.2.0)\n")
    with pytest.raises(InferenceError):
        generator_requirements("Wheel-Version: 1.0\n")
    with pytest.raises(InferenceError):
        generator_requirements("not a header line\n")


def test_setuptools_pin_follows_metadata_shape():
    assert setuptools_requirement("Name: x\n") == "setuptools==56.2.0"
    assert setuptools_requirement("License-File: LICENSE\nPlatform: UNKNOWN\n") == "setuptools==57.5.0"
    assert setuptools_requirement("License-File: LICENSE\n") == "setuptools==67.7.2"


def test_pyproject_and_pure_wheel_helpers():
    assert pyproject_requirements(b"[project]\nname = 'x'\n") == []
    with pytest.raises(InferenceError):
        pyproject_requirements(b"[build-system\n")
    with pytest.raises(UnsupportedError):
        find_pure_wheel([Artifact(filename="x-1.0-cp311-cp311-manylinux_2_17_x86_64.whl")])


@pytest.mark.parametrize(
    "raw, expected",
    [
        (b'[build-system]\nrequires = ["setuptools >= 61", "wheel"]\n', ["setuptools>=61", "wheel"]),
        (b'[build-system]\nrequires = "setuptools"\n', []),
        (b'build-system = "setuptools"\n', []),
        (b'[build-system]\nrequires = ["hatchling", 3]\n', ["hatchling"]),
    ],
)
def test_pyproject_requirements_ignores_malformed_tables(raw, expected):
    assert pyproject_requirements(raw) == expected
