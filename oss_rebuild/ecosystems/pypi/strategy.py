from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from oss_rebuild.core.domain.models import BuildEnv, Instructions, Target
from oss_rebuild.core.domain.strategies import Strategy, basic_source_setup, register_strategy


@register_strategy
class PureWheelBuild(Strategy):
    """Builds a `py3-none-any` wheel with pinned build backends in an isolated venv."""

    requirements: List[str] = Field(default_factory=list)
    registry_time: Optional[datetime] = None

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        deps = ["/usr/bin/python3 -m venv /deps"]
        if self.registry_time is not None:
            deps.append(f"export PIP_INDEX_URL={env.timewarp_url('pypi', self.registry_time)}")
        deps.append("/deps/bin/pip install build")
        deps.extend(f"/deps/bin/pip install {requirement}" for requirement in self.requirements)
        return Instructions(
            location=self.location,
            system_deps=["git", "python3"],
            source=basic_source_setup(self.location, env),
            deps="\n".join(deps),
            build=f"/deps/bin/python3 -m build --wheel -n {self.location.dir or '.'}",
            output_path=f"dist/{target.artifact}",
        )
