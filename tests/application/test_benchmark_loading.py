import json

import pytest

from oss_rebuild.application.benchmark import load_benchmark, parse_benchmark
from oss_rebuild.core.domain.models import Target
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import MalformedError

BENCHMARK = {
    "Count": 3,
    "Updated": "2024-01-01T00:00:00Z",
    "Packages": [
        {"Ecosystem": "npm", "Name": "left-pad", "Versions": ["1.3.0", "1.2.0"]},
        {"Ecosystem": "pypi", "Name": "absl-py", "Versions": ["2.0.0"], "Artifacts": ["absl_py-2.0.0-py3-none-any.whl"]},
    ],
}


def test_targets_follow_file_order(tmp_path):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps(BENCHMARK), encoding="utf-8")
    bench = load_benchmark(path)
    assert bench.count == 3
    assert bench.targets() == [
        Target(ecosystem=Ecosystem.NPM, package="left-pad", version="1.3.0"),
        Target(ecosystem=Ecosystem.NPM, package="left-pad", version="1.2.0"),
        Target(ecosystem=Ecosystem.PYPI, package="absl-py", version="2.0.0", artifact="absl_py-2.0.0-py3-none-any.whl"),
    ]


def test_hash_ignores_order_but_not_content():
    bench = parse_benchmark(json.dumps(BENCHMARK))
    reordered = dict(BENCHMARK, Packages=list(reversed(BENCHMARK["Packages"])))
    assert parse_benchmark(json.dumps(reordered)).hash() == bench.hash()
    assert len(bench.hash()) == 64

    changed = json.loads(json.dumps(BENCHMARK))
    changed["Packages"][0]["Versions"] = ["1.3.0"]
    assert parse_benchmark(json.dumps(changed)).hash() != bench.hash()


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b'{"Packages": [{"Ecosystem": "rubygems", "Name": "rails", "Versions": ["7.0.0"]}]}',
        b'{"Packages": [{"Ecosystem": "npm", "Name": "x", "Versions": ["1.0.0"], "Artifacts": []}]}',
        b'{"Packages": [{"Ecosystem": "npm", "Name": "x", "Versions": [""]}]}',
    ],
)
def test_invalid_benchmarks_are_rejected(raw):
    with pytest.raises(MalformedError):
        parse_benchmark(raw).targets()
