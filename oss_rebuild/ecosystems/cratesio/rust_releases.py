"""
Stable Rust releases, newest first.

Each row is (version, release date, whether a musl toolchain is published).
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Tuple

from oss_rebuild.core.semver import Semver
from oss_rebuild.exceptions import InferenceError

_RELEASES: Tuple[Tuple[str, str, bool], ...] = (
    ("1.89.0", "2025-08-07", True),
    ("1.88.0", "2025-06-26", True),
    ("1.87.0", "2025-05-15", True),
    ("1.86.0", "2025-04-03", True),
    ("1.85.1", "2025-03-18", True),
    ("1.85.0", "2025-02-20", True),
    ("1.84.1", "2025-01-30", True),
    ("1.84.0", "2025-01-09", True),
    ("1.83.0", "2024-11-28", True),
    ("1.82.0", "2024-10-17", True),
    ("1.81.0", "2024-09-05", True),
    ("1.80.1", "2024-08-08", True),
    ("1.80.0", "2024-07-25", True),
    ("1.79.0", "2024-06-13", True),
    ("1.78.0", "2024-05-02", True),
    ("1.77.2", "2024-04-09", True),
    ("1.77.1", "2024-03-28", True),
    ("1.77.0", "2024-03-21", True),
    ("1.76.0", "2024-02-08", True),
    ("1.75.0", "2023-12-28", True),
    ("1.74.1", "2023-12-07", True),
    ("1.74.0", "2023-11-16", True),
    ("1.73.0", "2023-10-05", True),
    ("1.72.1", "2023-09-19", True),
    ("1.72.0", "2023-08-24", True),
    ("1.71.1", "2023-08-03", True),
    ("1.71.0", "2023-07-13", True),
    ("1.70.0", "2023-06-01", True),
    ("1.69.0", "2023-04-20", True),
    ("1.68.2", "2023-03-28", True),
    ("1.68.1", "2023-03-23", True),
    ("1.68.0", "2023-03-09", True),
    ("1.67.1", "2023-02-09", True),
    ("1.67.0", "2023-01-26", True),
    ("1.66.1", "2023-01-10", True),
    ("1.66.0", "2022-12-15", True),
    ("1.65.0", "2022-11-03", True),
    ("1.64.0", "2022-09-22", True),
    ("1.63.0", "2022-08-11", True),
    ("1.62.1", "2022-07-19", True),
    ("1.62.0", "2022-06-30", True),
    ("1.61.0", "2022-05-19", True),
    ("1.60.0", "2022-04-07", True),
    ("1.59.0", "2022-02-24", True),
    ("1.58.1", "2022-01-20", True),
    ("1.58.0", "2022-01-13", True),
    ("1.57.0", "2021-12-02", True),
    ("1.56.1", "2021-11-01", True),
    ("1.56.0", "2021-10-21", True),
    ("1.55.0", "2021-09-09", True),
    ("1.54.0", "2021-07-29", True),
    ("1.53.0", "2021-06-17", True),
    ("1.52.1", "2021-05-10", True),
    ("1.52.0", "2021-05-06", True),
    ("1.51.0", "2021-03-25", True),
    ("1.50.0", "2021-02-11", True),
    ("1.49.0", "2020-12-31", True),
    ("1.48.0", "2020-11-19", True),
    ("1.47.0", "2020-10-08", True),
    ("1.46.0", "2020-08-27", True),
    ("1.45.2", "2020-08-03", True),
    ("1.45.1", "2020-07-30", True),
    ("1.45.0", "2020-07-16", True),
    ("1.44.1", "2020-06-18", True),
    ("1.44.0", "2020-06-04", True),
    ("1.43.1", "2020-05-07", True),
    ("1.43.0", "2020-04-23", True),
    ("1.42.0", "2020-03-12", True),
    ("1.41.1", "2020-02-27", True),
    ("1.41.0", "2020-01-30", True),
    ("1.40.0", "2019-12-19", True),
    ("1.39.0", "2019-11-07", True),
    ("1.38.0", "2019-09-26", True),
    ("1.37.0", "2019-08-15", True),
    ("1.36.0", "2019-07-04", True),
    ("1.35.0", "2019-05-23", True),
    ("1.34.2", "2019-05-14", False),
    ("1.34.1", "2019-04-25", False),
    ("1.34.0", "2019-04-11", False),
    ("1.33.0", "2019-02-28", False),
    ("1.32.0", "2019-01-17", False),
    ("1.31.1", "2018-12-20", False),
    ("1.31.0", "2018-12-06", False),
    ("1.30.1", "2018-11-08", False),
    ("1.30.0", "2018-10-25", False),
    ("1.29.2", "2018-10-11", False),
    ("1.29.1", "2018-09-25", False),
    ("1.29.0", "2018-09-13", False),
    ("1.28.0", "2018-08-02", False),
    ("1.27.2", "2018-07-20", False),
    ("1.27.1", "2018-07-10", False),
    ("1.27.0", "2018-06-21", False),
    ("1.26.2", "2018-06-05", False),
    ("1.26.1", "2018-05-29", False),
    ("1.26.0", "2018-05-10", False),
    ("1.25.0", "2018-03-29", False),
    ("1.24.1", "2018-03-01", False),
    ("1.24.0", "2018-02-15", False),
    ("1.23.0", "2018-01-04", False),
    ("1.22.1", "2017-11-22", False),
    ("1.22.0", "2017-11-22", False),
    ("1.21.0", "2017-10-12", False),
    ("1.20.0", "2017-08-31", False),
    ("1.19.0", "2017-07-20", False),
    ("1.18.0", "2017-06-08", False),
    ("1.17.0", "2017-04-27", False),
    ("1.16.0", "2017-03-16", False),
    ("1.15.1", "2017-02-09", False),
    ("1.15.0", "2017-02-02", False),
    ("1.14.0", "2016-12-22", False),
    ("1.13.0", "2016-11-10", False),
    ("1.12.1", "2016-10-20", False),
    ("1.12.0", "2016-09-29", False),
    ("1.11.0", "2016-08-18", False),
    ("1.10.0", "2016-07-07", False),
    ("1.9.0", "2016-05-26", False),
    ("1.8.0", "2016-04-14", False),
    ("1.7.0", "2016-03-03", False),
    ("1.6.0", "2016-01-21", False),
    ("1.5.0", "2015-12-10", False),
    ("1.4.0", "2015-10-29", False),
    ("1.3.0", "2015-09-17", False),
    ("1.2.0", "2015-08-07", False),
    ("1.1.0", "2015-06-25", False),
    ("1.0.0", "2015-05-15", False),
    ("1.0.0-alpha.2", "2015-02-20", False),
    ("1.0.0-alpha", "2015-01-09", False),
    ("0.12.0", "2014-10-09", False),
    ("0.11.0", "2014-07-02", False),
    ("0.10", "2014-04-03", False),
    ("0.9", "2014-01-09", False),
    ("0.8", "2013-09-26", False),
    ("0.7", "2013-07-03", False),
    ("0.6", "2013-04-03", False),
    ("0.5", "2012-12-21", False),
    ("0.4", "2012-10-15", False),
)


def rust_version_at(moment: datetime) -> str:
    """Returns the newest release published on or before `moment`."""
    day = moment.date()
    for version, released, _ in _RELEASES:
        if date.fromisoformat(released) <= day:
            return version
    raise InferenceError("no Rust release found")


def has_musl_build(version: str) -> bool:
    if Semver.parse(version) > Semver.parse(_RELEASES[0][0]):
        return True
    for candidate, _, musl in _RELEASES:
        if candidate == version:
            return musl
    raise InferenceError("no Rust release found")
