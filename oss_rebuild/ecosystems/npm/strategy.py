from __future__ import annotations

from datetime import datetime
from typing import List

from oss_rebuild.core.domain.models import BuildEnv, Instructions, Target
from oss_rebuild.core.domain.strategies import Strategy, basic_source_setup, join_output_path, register_strategy

NPM_SYSTEM_DEPS = ["git", "npm"]


def _cd_prefix(directory: str) -> str:
    return f"cd {directory} && " if directory and directory != "." else ""


def _version_patch(directory: str, override: str) -> List[str]:
    if not override:
        return []
    # The system npm is used because `npm version` predates the pinned CLI on old releases.
    return [f"PATH=/usr/bin:/bin:/usr/local/bin /usr/bin/npm version --prefix {directory} --no-git-tag-version {override}"]


def _registry_redirect(env: BuildEnv, registry_time: datetime) -> List[str]:
    return [
        f"/usr/bin/npm config --location-global set registry {env.timewarp_url('npm', registry_time)}",
        "trap '/usr/bin/npm config --location-global delete registry' EXIT",
    ]


@register_strategy
class NPMPackBuild(Strategy):
    """Runs `npm pack` at the manifest directory with a pinned npm CLI."""

    npm_version: str
    version_override: str = ""

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        directory = self.location.dir or "."
        build = _version_patch(directory, self.version_override)
        build.append(f"/usr/bin/npx --package=npm@{self.npm_version} -c '{_cd_prefix(directory)}npm pack'")
        return Instructions(
            location=self.location,
            system_deps=list(NPM_SYSTEM_DEPS),
            source=basic_source_setup(self.location, env),
            deps="",
            build="\n".join(build),
            output_path=join_output_path(self.location, target.artifact),
        )


@register_strategy
class NPMCustomBuild(Strategy):
    """
    Installs a pinned Node toolchain and dependencies through the timewarp
    registry, runs the package's own build script and packs the result.
    """

    npm_version: str
    node_version: str
    command: str = ""
    registry_time: datetime
    prepack_remove_deps: bool = False
    keep_root: bool = False
    version_override: str = ""

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        directory = self.location.dir or "."
        redirect = _registry_redirect(env, self.registry_time)
        node = self.node_version
        deps = [
            *redirect,
            f"wget -O - https://unofficial-builds.nodejs.org/download/release/v{node}/node-v{node}-linux-x64-musl.tar.gz"
            " | tar xzf - --strip-components=1 -C /usr/local/",
            f"/usr/local/bin/npx --package=npm@{self.npm_version} -c '{_cd_prefix(directory)}npm install --force'",
        ]
        steps = []
        if self.keep_root:
            steps.append("npm config set unsafe-perm true")
        if self.command:
            steps.append(f"npm run {self.command}")
        if self.prepack_remove_deps:
            steps.append("rm -rf node_modules")
        steps.append("npm pack")
        build = [
            *redirect,
            *_version_patch(directory, self.version_override),
            f"/usr/local/bin/npx --package=npm@{self.npm_version} -c '{_cd_prefix(directory)}{' && '.join(steps)}'",
        ]
        return Instructions(
            location=self.location,
            system_deps=list(NPM_SYSTEM_DEPS),
            source=basic_source_setup(self.location, env),
            deps="\n".join(deps),
            build="\n".join(build),
            output_path=join_output_path(self.location, target.artifact),
        )
