import pytest

from oss_rebuild.core import semver
from oss_rebuild.core.semver import Semver
from oss_rebuild.exceptions import InvalidSemver


def test_parse_accepts_leading_v_and_metadata():
    version = Semver.parse("v1.2.3-rc.1+build.5")
    assert version.core == (1, 2, 3)
    assert version.prerelease == "rc.1"
    assert version.build == "build.5"
    assert str(version) == "1.2.3-rc.1+build.5"


@pytest.mark.parametrize("raw", ["", "1.2", "01.2.3", "1.2.3-", "1.2.3+", "latest"])
def test_parse_rejects_invalid(raw):
    with pytest.raises(InvalidSemver):
        Semver.parse(raw)
    assert semver.is_valid(raw) is False


def test_ordering_follows_precedence_rules():
    ordered = [
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
        "1.0.1",
        "1.10.0",
        "2.0.0",
    ]
    parsed = [Semver.parse(value) for value in ordered]
    assert sorted(reversed(parsed)) == parsed
    for left, right in zip(ordered, ordered[1:]):
        assert semver.cmp(left, right) == -1
        assert semver.cmp(right, left) == 1


def test_build_metadata_does_not_affect_equality():
    assert Semver.parse("1.0.0+a") == Semver.parse("1.0.0+b")
    assert semver.cmp("1.0.0+a", "1.0.0") == 0
    assert len({Semver.parse("1.0.0+a"), Semver.parse("1.0.0")}) == 1
