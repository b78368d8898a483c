from __future__ import annotations

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from oss_rebuild.core.domain.models import BuildEnv, Instructions, Location, Target
from oss_rebuild.core.domain.strategies import Strategy, register_strategy

DEBIAN_SYSTEM_DEPS = ["wget", "git", "build-essential", "fakeroot", "devscripts"]

_BINARY_VERSION = re.compile(r"^(?P<name>[^_]+)_(?P<version>[^_]+)(\+b\d+)_(?P<arch>[^_]+)\.deb$")


class FileWithChecksum(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = ""
    md5: str = ""


@register_strategy
class DebianPackage(Strategy):
    """Rebuilds a binary package from its source package with `debuild`."""

    dsc: FileWithChecksum = Field(default_factory=FileWithChecksum)
    orig: FileWithChecksum = Field(default_factory=FileWithChecksum)
    debian: FileWithChecksum = Field(default_factory=FileWithChecksum)
    native: FileWithChecksum = Field(default_factory=FileWithChecksum)
    requirements: List[str] = Field(default_factory=list)

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        source = ["set -eux", f"wget {self.dsc.url}"]
        if self.native.url:
            source.append(f"wget {self.native.url}")
        else:
            source.extend([f"wget {self.orig.url}", f"wget {self.debian.url}"])
        source.append(f'dpkg-source -x --no-check $(basename "{self.dsc.url}")')

        deps = ["set -eux", "apt update", f"apt install -y {' '.join(self.requirements)}"]

        build = ["set -eux", "cd */", "debuild -b -uc -us"]
        # Binary-only uploads (`+bN`) are built under the source version and renamed.
        matched = _BINARY_VERSION.match(target.artifact)
        if matched is not None:
            expected = f"{matched.group('name')}_{matched.group('version')}_{matched.group('arch')}.deb"
            build.append(f"mv /src/{expected} /src/{target.artifact}")
        return Instructions(
            location=Location(),
            system_deps=list(DEBIAN_SYSTEM_DEPS),
            source="\n".join(source),
            deps="\n".join(deps),
            build="\n".join(build),
            output_path=target.artifact,
        )
