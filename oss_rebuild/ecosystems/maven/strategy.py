from __future__ import annotations

import posixpath

from oss_rebuild.core.domain.models import BuildEnv, Instructions, Target
from oss_rebuild.core.domain.strategies import Strategy, basic_source_setup, register_strategy
from oss_rebuild.ecosystems.maven.pom import SUPPORTED_JDK_MAJORS, jdk_major
from oss_rebuild.exceptions import InferenceError

_TEMURIN_URL = "https://api.adoptium.net/v3/binary/latest/{major}/ga/linux/x64/jdk/hotspot/normal/eclipse"


def jdk_download_url(jdk_version: str) -> str:
    major = jdk_major(jdk_version)
    if major not in SUPPORTED_JDK_MAJORS:
        raise InferenceError(f"no JDK download candidate for version {jdk_version!r}")
    return _TEMURIN_URL.format(major=major)


@register_strategy
class MavenBuild(Strategy):
    """Runs `mvn package` with a pinned JDK, skipping tests and javadoc."""

    jdk_version: str
    target_version: str = ""

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        directory = self.location.dir or "."
        deps = [
            "mkdir -p /opt/jdk",
            f'wget -q -O - "{jdk_download_url(self.jdk_version)}" | tar -xzf - --strip-components=1 -C /opt/jdk',
        ]
        command = f"mvn clean package -DskipTests --batch-mode -f {directory} -Dmaven.javadoc.skip=true"
        if self.target_version:
            command += f" -Dmaven.compiler.release={self.target_version}"
        build = ["export JAVA_HOME=/opt/jdk", "export PATH=$JAVA_HOME/bin:$PATH", command]
        return Instructions(
            location=self.location,
            system_deps=["git", "wget", "maven"],
            source=basic_source_setup(self.location, env),
            deps="\n".join(deps),
            build="\n".join(build),
            output_path=posixpath.normpath(posixpath.join(directory, "target", target.artifact)),
        )
