from __future__ import annotations

import posixpath
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from oss_rebuild.core import semver
from oss_rebuild.core.domain.models import BuildEnv, Instructions, Target
from oss_rebuild.core.domain.strategies import Strategy, basic_source_setup, register_strategy


class ExplicitLockfile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lockfile_base64: str = ""


@register_strategy
class CratesIOCargoPackage(Strategy):
    """Packages a crate with `cargo package`, optionally pinning the toolchain and lockfile."""

    rust_version: str
    explicit_lockfile: Optional[ExplicitLockfile] = None
    pre_commands: List[str] = Field(default_factory=list)

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        deps: List[str] = []
        if self.explicit_lockfile is not None:
            deps.append(f"echo '{self.explicit_lockfile.lockfile_base64}' | base64 -d > Cargo.lock")
        # Old toolchains predate the sparse index, so the default toolchain is used unless asked otherwise.
        if env.prefer_precise_toolchain:
            deps.append(f"/usr/bin/rustup-init -y --profile minimal --default-toolchain {self.rust_version}")

        command = "/root/.cargo/bin/cargo package --no-verify"
        if not env.prefer_precise_toolchain or semver.cmp(self.rust_version, "1.56.0") > 0:
            command += f' --package "path+file://$(readlink -f {self.location.dir or "."})"'
        return Instructions(
            location=self.location,
            system_deps=["git", "rustup"],
            source=basic_source_setup(self.location, env),
            deps="\n".join(deps),
            build="\n".join([*self.pre_commands, command]),
            output_path=posixpath.join("target", "package", target.artifact),
        )
