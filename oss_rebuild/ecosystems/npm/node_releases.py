"""
Releases published on unofficial-builds.nodejs.org, highest version first.

Each row is (version, release date, whether a linux-x64-musl build exists).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Tuple

from oss_rebuild.core.semver import Semver


@dataclass(frozen=True)
class NodeRelease:
    version: Semver
    date: date
    has_musl: bool


_RELEASES: Tuple[Tuple[str, str, bool], ...] = (
    ("23.6.1", "2025-01-21", True),
    ("23.6.0", "2025-01-07", True),
    ("23.5.0", "2024-12-19", True),
    ("23.4.0", "2024-12-10", True),
    ("23.3.0", "2024-11-20", True),
    ("23.2.0", "2024-11-15", True),
    ("23.1.0", "2024-10-24", True),
    ("23.0.0", "2024-10-16", True),
    ("22.13.1", "2025-01-21", True),
    ("22.13.0", "2025-01-07", True),
    ("22.12.0", "2024-12-03", True),
    ("22.11.0", "2024-10-29", True),
    ("22.10.0", "2024-10-16", True),
    ("22.9.0", "2024-09-17", True),
    ("22.8.0", "2024-09-03", True),
    ("22.7.0", "2024-08-22", True),
    ("22.6.0", "2024-08-06", True),
    ("22.5.1", "2024-07-19", True),
    ("22.5.0", "2024-07-18", True),
    ("22.4.1", "2024-07-08", True),
    ("22.4.0", "2024-07-02", True),
    ("22.3.0", "2024-06-11", True),
    ("22.2.0", "2024-05-16", True),
    ("22.1.0", "2024-05-02", True),
    ("22.0.0", "2024-04-24", True),
    ("21.7.3", "2024-04-11", True),
    ("21.7.2", "2024-04-03", True),
    ("21.7.1", "2024-03-08", True),
    ("21.7.0", "2024-03-06", True),
    ("21.6.2", "2024-02-14", True),
    ("21.6.1", "2024-01-29", True),
    ("21.6.0", "2024-01-15", True),
    ("21.5.0", "2023-12-19", True),
    ("21.4.0", "2023-12-05", True),
    ("21.3.0", "2023-11-30", True),
    ("21.2.0", "2023-11-15", True),
    ("21.1.0", "2023-10-24", True),
    ("21.0.0", "2023-10-17", True),
    ("20.18.2", "2025-01-22", True),
    ("20.18.1", "2024-11-20", True),
    ("20.18.0", "2024-10-03", True),
    ("20.17.0", "2024-08-21", True),
    ("20.16.0", "2024-07-24", True),
    ("20.15.1", "2024-07-08", True),
    ("20.15.0", "2024-06-24", True),
    ("20.14.0", "2024-05-28", True),
    ("20.13.1", "2024-05-09", True),
    ("20.13.0", "2024-05-07", True),
    ("20.12.2", "2024-04-10", True),
    ("20.12.1", "2024-04-03", True),
    ("20.12.0", "2024-03-26", True),
    ("20.11.1", "2024-02-15", True),
    ("20.11.0", "2024-01-10", True),
    ("20.10.0", "2023-11-22", True),
    ("20.9.0", "2023-10-24", True),
    ("20.8.1", "2023-10-13", True),
    ("20.8.0", "2023-09-29", True),
    ("20.7.0", "2023-09-18", True),
    ("20.6.1", "2023-09-08", True),
    ("20.6.0", "2023-09-04", True),
    ("20.5.1", "2023-08-09", True),
    ("20.5.0", "2023-07-21", True),
    ("20.4.0", "2023-07-07", True),
    ("20.3.1", "2023-06-20", True),
    ("20.3.0", "2023-06-09", True),
    ("20.2.0", "2023-05-16", True),
    ("20.1.0", "2023-05-04", True),
    ("20.0.0", "2023-04-19", True),
    ("19.9.0", "2023-04-11", True),
    ("19.8.1", "2023-03-15", True),
    ("19.7.0", "2023-02-21", True),
    ("19.6.1", "2023-02-17", True),
    ("19.6.0", "2023-02-02", True),
    ("19.5.0", "2023-01-24", True),
    ("19.4.0", "2023-01-06", True),
    ("19.3.0", "2022-12-14", True),
    ("19.2.0", "2022-11-29", True),
    ("19.1.0", "2022-11-14", True),
    ("19.0.1", "2022-11-04", True),
    ("19.0.0", "2022-10-18", True),
    ("18.20.6", "2025-01-22", True),
    ("18.20.5", "2024-11-15", True),
    ("18.20.4", "2024-07-09", True),
    ("18.20.3", "2024-05-21", True),
    ("18.20.2", "2024-04-10", True),
    ("18.20.1", "2024-04-03", True),
    ("18.20.0", "2024-03-26", True),
    ("18.19.1", "2024-02-15", True),
    ("18.19.0", "2023-12-01", True),
    ("18.18.2", "2023-10-14", True),
    ("18.18.1", "2023-10-11", True),
    ("18.18.0", "2023-09-19", True),
    ("18.17.1", "2023-08-10", True),
    ("18.17.0", "2023-07-18", True),
    ("18.16.1", "2023-06-21", True),
    ("18.16.0", "2023-04-13", True),
    ("18.15.0", "2023-03-07", True),
    ("18.14.2", "2023-02-21", True),
    ("18.14.1", "2023-02-19", True),
    ("18.14.0", "2023-02-02", True),
    ("18.13.0", "2023-01-06", True),
    ("18.12.1", "2022-11-05", True),
    ("18.12.0", "2022-10-25", True),
    ("18.11.0", "2022-10-13", True),
    ("18.10.0", "2022-09-28", True),
    ("18.9.1", "2022-09-23", True),
    ("18.9.0", "2022-09-08", True),
    ("18.8.0", "2022-08-24", True),
    ("18.7.0", "2022-07-26", True),
    ("18.6.0", "2022-07-13", True),
    ("18.5.0", "2022-07-07", True),
    ("18.4.0", "2022-06-16", True),
    ("18.3.0", "2022-06-02", True),
    ("18.2.0", "2022-05-17", True),
    ("18.1.0", "2022-05-03", True),
    ("18.0.0", "2022-04-19", True),
    ("17.9.1", "2022-06-03", True),
    ("17.9.0", "2022-04-12", True),
    ("17.8.0", "2022-03-22", True),
    ("17.7.2", "2022-03-18", True),
    ("17.7.1", "2022-03-10", True),
    ("17.7.0", "2022-03-09", True),
    ("17.6.0", "2022-02-23", True),
    ("17.5.0", "2022-02-10", True),
    ("17.4.0", "2022-01-18", True),
    ("17.3.1", "2022-01-11", True),
    ("17.3.0", "2021-12-17", True),
    ("17.2.0", "2021-11-30", True),
    ("17.1.0", "2021-11-09", True),
    ("17.0.1", "2021-10-20", True),
    ("17.0.0", "2021-10-19", True),
    ("16.20.2", "2023-08-09", True),
    ("16.20.1", "2023-06-21", True),
    ("16.20.0", "2023-03-29", True),
    ("16.19.1", "2023-02-19", True),
    ("16.19.0", "2022-12-13", True),
    ("16.18.1", "2022-11-04", True),
    ("16.18.0", "2022-10-12", True),
    ("16.17.1", "2022-09-23", True),
    ("16.17.0", "2022-08-16", True),
    ("16.16.0", "2022-07-07", True),
    ("16.15.1", "2022-06-01", True),
    ("16.15.0", "2022-04-27", True),
    ("16.14.2", "2022-03-18", True),
    ("16.14.1", "2022-03-17", True),
    ("16.14.0", "2022-02-08", True),
    ("16.13.2", "2022-01-11", True),
    ("16.13.1", "2021-12-01", True),
    ("16.13.0", "2021-10-26", True),
    ("16.12.0", "2021-10-20", True),
    ("16.11.1", "2021-10-12", True),
    ("16.11.0", "2021-10-11", True),
    ("16.10.0", "2021-09-22", True),
    ("16.9.1", "2021-09-10", True),
    ("16.9.0", "2021-09-07", True),
    ("16.8.0", "2021-08-25", True),
    ("16.7.0", "2021-08-18", True),
    ("16.6.2", "2021-08-11", True),
    ("16.6.1", "2021-08-03", True),
    ("16.6.0", "2021-07-29", True),
    ("16.5.0", "2021-07-14", True),
    ("16.4.2", "2021-07-06", True),
    ("16.4.1", "2021-07-05", True),
    ("16.4.0", "2021-06-24", True),
    ("16.3.0", "2021-06-03", True),
    ("16.2.0", "2021-05-19", True),
    ("16.1.0", "2021-05-05", True),
    ("16.0.0", "2021-04-22", True),
    ("15.14.0", "2021-04-07", True),
    ("15.13.0", "2021-03-31", True),
    ("15.12.0", "2021-03-17", True),
    ("15.11.0", "2021-03-03", True),
    ("15.10.0", "2021-02-23", True),
    ("15.9.0", "2021-02-18", True),
    ("15.8.0", "2021-02-02", True),
    ("15.7.0", "2021-01-26", True),
    ("15.6.0", "2021-01-15", True),
    ("15.5.1", "2021-01-04", True),
    ("15.5.0", "2020-12-22", True),
    ("15.4.0", "2020-12-09", True),
    ("15.3.0", "2020-11-24", True),
    ("15.2.1", "2020-11-16", True),
    ("15.2.0", "2020-11-10", True),
    ("15.1.0", "2020-11-04", True),
    ("15.0.1", "2020-10-21", True),
    ("15.0.0", "2020-10-20", True),
    ("14.21.3", "2023-02-17", True),
    ("14.21.2", "2022-12-13", True),
    ("14.21.1", "2022-11-08", True),
    ("14.21.0", "2022-11-01", True),
    ("14.20.1", "2022-09-23", True),
    ("14.20.0", "2022-07-07", True),
    ("14.19.3", "2022-05-17", True),
    ("14.19.2", "2022-05-09", True),
    ("14.19.1", "2022-03-18", True),
    ("14.19.0", "2022-02-01", True),
    ("14.18.3", "2022-01-10", True),
    ("14.18.2", "2021-11-30", True),
    ("14.18.1", "2021-10-12", True),
    ("14.18.0", "2021-09-28", True),
    ("14.17.6", "2021-08-31", True),
    ("14.17.5", "2021-08-11", True),
    ("14.17.4", "2021-07-29", True),
    ("14.17.3", "2021-07-05", True),
    ("14.17.2", "2021-07-05", True),
    ("14.17.1", "2021-06-15", True),
    ("14.17.0", "2021-05-11", True),
    ("14.16.1", "2021-04-06", True),
    ("14.16.0", "2021-02-23", True),
    ("14.15.5", "2021-02-09", True),
    ("14.15.4", "2021-01-04", True),
    ("14.15.3", "2020-12-17", True),
    ("14.15.2", "2020-12-16", True),
    ("14.15.1", "2020-11-16", True),
    ("14.15.0", "2020-10-27", True),
    ("14.14.0", "2020-10-16", True),
    ("14.13.1", "2020-10-07", True),
    ("14.13.0", "2020-09-29", True),
    ("14.12.0", "2020-09-22", True),
    ("14.11.0", "2020-09-15", True),
    ("14.10.1", "2020-09-10", True),
    ("14.10.0", "2020-09-08", True),
    ("14.9.0", "2020-08-27", True),
    ("14.8.0", "2020-08-11", True),
    ("14.7.0", "2020-08-10", True),
    ("14.6.0", "2020-07-21", True),
    ("14.5.0", "2020-06-30", True),
    ("14.4.0", "2020-06-02", True),
    ("14.3.0", "2020-05-19", True),
    ("14.2.0", "2020-05-05", True),
    ("14.1.0", "2020-04-29", True),
    ("14.0.0", "2020-04-23", True),
    ("13.14.0", "2020-04-29", True),
    ("13.13.0", "2020-04-14", True),
    ("13.12.0", "2020-03-26", True),
    ("13.11.0", "2020-03-12", True),
    ("13.10.1", "2020-03-05", True),
    ("13.10.0", "2020-03-04", False),
    ("13.9.0", "2020-02-18", False),
    ("13.8.0", "2020-02-07", True),
    ("13.7.0", "2020-01-21", True),
    ("13.6.0", "2020-01-07", True),
    ("13.5.0", "2019-12-18", True),
    ("13.4.0", "2019-12-18", True),
    ("13.3.0", "2019-12-03", True),
    ("13.2.0", "2019-11-22", True),
    ("13.1.0", "2019-11-06", True),
    ("13.0.1", "2019-10-23", True),
    ("13.0.0", "2019-10-22", True),
    ("12.22.12", "2022-04-05", True),
    ("12.22.11", "2022-03-17", True),
    ("12.22.10", "2022-02-01", True),
    ("12.22.9", "2022-01-11", True),
    ("12.22.8", "2021-12-16", True),
    ("12.22.7", "2021-10-12", True),
    ("12.22.6", "2021-08-31", True),
    ("12.22.5", "2021-08-11", True),
    ("12.22.4", "2021-07-29", True),
    ("12.22.3", "2021-07-05", True),
    ("12.22.2", "2021-07-05", True),
    ("12.22.1", "2021-04-06", True),
    ("12.22.0", "2021-03-30", True),
    ("12.21.0", "2021-02-23", True),
    ("12.20.2", "2021-02-10", True),
    ("12.20.1", "2021-01-04", True),
    ("12.20.0", "2020-11-24", True),
    ("12.19.1", "2020-11-16", True),
    ("12.19.0", "2020-10-06", True),
    ("12.18.4", "2020-09-15", True),
    ("12.18.3", "2020-07-22", True),
    ("12.18.2", "2020-06-30", True),
    ("12.18.1", "2020-06-17", True),
    ("12.18.0", "2020-06-02", True),
    ("12.17.0", "2020-05-26", True),
    ("12.16.3", "2020-04-28", True),
    ("12.16.2", "2020-04-08", True),
    ("12.16.1", "2020-02-18", True),
    ("12.16.0", "2020-02-11", True),
    ("12.15.0", "2020-02-06", True),
    ("12.14.1", "2020-01-07", True),
    ("12.14.0", "2019-12-17", True),
    ("12.13.1", "2019-11-19", True),
    ("12.13.0", "2019-10-21", True),
    ("12.12.0", "2019-10-11", True),
    ("12.11.1", "2019-10-01", True),
    ("12.11.0", "2019-09-30", False),
    ("12.10.0", "2019-09-25", True),
    ("12.9.1", "2019-10-01", True),
    ("12.9.0", "2019-08-20", True),
    ("12.8.1", "2019-08-15", True),
    ("12.8.0", "2019-09-16", True),
    ("12.7.0", "2019-07-23", True),
    ("12.6.0", "2019-07-03", True),
    ("12.5.0", "2019-06-27", True),
    ("12.4.0", "2019-06-04", True),
    ("12.3.1", "2019-05-22", True),
    ("12.3.0", "2019-05-21", True),
    ("12.2.0", "2019-05-07", True),
    ("12.1.0", "2019-04-29", True),
    ("12.0.0", "2019-04-23", True),
    ("11.15.0", "2019-04-30", True),
    ("11.14.0", "2019-04-23", True),
    ("10.24.1", "2021-04-06", True),
    ("10.24.0", "2021-02-23", True),
    ("10.23.3", "2021-02-09", True),
    ("10.23.2", "2021-01-26", True),
    ("10.23.1", "2021-01-04", True),
    ("10.23.0", "2020-10-27", True),
    ("10.22.1", "2020-09-15", True),
    ("10.22.0", "2020-07-21", True),
    ("10.21.0", "2020-06-02", True),
    ("10.20.1", "2020-04-12", True),
    ("10.20.0", "2020-04-08", True),
    ("10.19.0", "2020-02-06", True),
    ("10.18.1", "2020-01-09", True),
    ("10.18.0", "2019-12-17", True),
    ("10.17.0", "2019-10-22", True),
    ("10.16.3", "2019-08-15", True),
    ("10.16.2", "2019-08-06", True),
    ("10.16.1", "2019-07-31", True),
    ("10.16.0", "2019-05-28", True),
    ("8.17.0", "2019-12-18", True),
    ("8.16.2", "2019-10-09", True),
    ("8.16.1", "2019-08-15", True),
    ("8.16.0", "2019-07-25", True),
)

UNOFFICIAL_NODE_RELEASES: List[NodeRelease] = [
    NodeRelease(version=Semver.parse(version), date=date.fromisoformat(day), has_musl=has_musl)
    for version, day, has_musl in _RELEASES
]
