"""
Build strategies: the tagged union describing how to rebuild a target.

Every variant is a pydantic model carrying a `Location` plus its own inputs
and renders itself with `generate_for(target, env)`. Variants register by
class name so that persisted `{"<Variant>": {...}}` envelopes decode back
into the right type.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from oss_rebuild.core.domain.models import BuildEnv, Instructions, Location, Target
from oss_rebuild.exceptions import InferenceError, MalformedError, UnsupportedError
from oss_rebuild.time_utils import parse_rfc3339

STRATEGY_TYPES: Dict[str, Type["Strategy"]] = {}


def register_strategy(cls: Type["Strategy"]) -> Type["Strategy"]:
    STRATEGY_TYPES[cls.__name__] = cls
    return cls


class Strategy(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: Location = Field(default_factory=Location)

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        raise NotImplementedError

    def to_oneof(self) -> Dict[str, Any]:
        return {type(self).__name__: self.model_dump(mode="json", exclude_defaults=True, by_alias=True)}


def strategy_from_oneof(payload: Dict[str, Any]) -> Strategy:
    if not isinstance(payload, dict) or len(payload) != 1:
        raise MalformedError("strategy envelope must have exactly one variant key")
    name, body = next(iter(payload.items()))
    cls = STRATEGY_TYPES.get(name)
    if cls is None:
        raise UnsupportedError(f"unknown strategy type: {name}")
    try:
        return cls.model_validate(body or {})
    except ValidationError as exc:
        raise MalformedError(f"invalid {name} strategy: {exc}") from exc


def basic_source_setup(location: Location, env: BuildEnv) -> str:
    if env.has_repo:
        return f"git checkout --force '{location.ref}'"
    return f"git clone '{location.repo}' .\ngit checkout --force '{location.ref}'"


def join_output_path(location: Location, artifact: str) -> str:
    return posixpath.normpath(posixpath.join(location.dir or ".", artifact))


@register_strategy
class LocationHint(Strategy):
    """Forces a location but otherwise defers to normal inference."""

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        raise InferenceError("LocationHint must be expanded using inference")


class WorkflowStep(BaseModel):
    runs: str = ""
    uses: str = ""
    with_: Dict[str, str] = Field(default_factory=dict, alias="with")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


@dataclass
class StepContext:
    target: Target
    env: BuildEnv
    location: Location
    with_: Dict[str, str] = field(default_factory=dict)


@dataclass
class Tool:
    name: str
    render: Callable[[StepContext], str]
    needs: List[str] = field(default_factory=list)


TOOLKIT: Dict[str, Tool] = {}


def register_tool(name: str, needs: List[str]) -> Callable[[Callable[[StepContext], str]], Callable[[StepContext], str]]:
    def decorator(fn: Callable[[StepContext], str]) -> Callable[[StepContext], str]:
        TOOLKIT[name] = Tool(name=name, render=fn, needs=list(needs))
        return fn

    return decorator


_PLACEHOLDERS = {
    "Location.Repo": lambda ctx: ctx.location.repo,
    "Location.Ref": lambda ctx: ctx.location.ref,
    "Location.Dir": lambda ctx: ctx.location.dir or ".",
    "Target.Package": lambda ctx: ctx.target.package,
    "Target.Version": lambda ctx: ctx.target.version,
    "Target.Artifact": lambda ctx: ctx.target.artifact,
    "Target.Ecosystem": lambda ctx: ctx.target.ecosystem.value,
    "BuildEnv.TimewarpHost": lambda ctx: ctx.env.timewarp_host,
}


def expand_placeholders(text: str, ctx: StepContext) -> str:
    """Replaces `{{.Location.Dir}}`-style placeholders with values from the step context."""
    result = str(text or "")
    for key, getter in _PLACEHOLDERS.items():
        for token in ("{{." + key + "}}", "{{ ." + key + " }}"):
            if token in result:
                result = result.replace(token, getter(ctx))
    return result


def _dir_prefix(directory: str) -> str:
    if directory and directory != ".":
        return f"cd {directory} && "
    return ""


@register_tool("git-checkout", needs=["git"])
def _git_checkout(ctx: StepContext) -> str:
    return basic_source_setup(ctx.location, ctx.env)


def _registry_redirect(ctx: StepContext) -> str:
    registry_time = ctx.with_.get("registryTime", "")
    if not registry_time:
        return ""
    url = ctx.env.timewarp_url("npm", parse_rfc3339(registry_time))
    return (
        f"/usr/bin/npm config --location-global set registry {url}\n"
        "trap '/usr/bin/npm config --location-global delete registry' EXIT\n"
    )


@register_tool("npm/install-node", needs=["wget"])
def _npm_install_node(ctx: StepContext) -> str:
    version = ctx.with_.get("nodeVersion", "")
    if not version:
        raise InferenceError("npm/install-node requires 'nodeVersion'")
    return (
        f"wget -O - https://unofficial-builds.nodejs.org/download/release/v{version}/node-v{version}-linux-x64-musl.tar.gz"
        " | tar xzf - --strip-components=1 -C /usr/local/"
    )


@register_tool("npm/install", needs=["npm"])
def _npm_install(ctx: StepContext) -> str:
    npm_version = ctx.with_.get("npmVersion", "")
    package = f"npm@{npm_version}" if npm_version else "npm"
    return (
        _registry_redirect(ctx)
        + f"PATH=/usr/local/bin:/usr/bin npx --package={package} -c '{_dir_prefix(ctx.location.dir)}npm install --force'"
    )


@register_tool("npm/npx", needs=["npm"])
def _npm_npx(ctx: StepContext) -> str:
    command = ctx.with_.get("command", "")
    if not command:
        raise InferenceError("npm/npx requires 'command'")
    npm_version = ctx.with_.get("npmVersion", "")
    package = f"npm@{npm_version}" if npm_version else "npm"
    locator = ctx.with_.get("locator", "")
    directory = expand_placeholders(ctx.with_.get("dir", ctx.location.dir), ctx)
    return _registry_redirect(ctx) + f"{locator}npx --package={package} -c '{_dir_prefix(directory)}{command}'"


@dataclass
class _Task:
    script: str = ""
    needs: List[str] = field(default_factory=list)


@register_strategy
class WorkflowStrategy(Strategy):
    """Generic step-based strategy. Each step has exactly one of `runs` or `uses`."""

    source_steps: List[WorkflowStep] = Field(default_factory=list)
    deps_steps: List[WorkflowStep] = Field(default_factory=list)
    build_steps: List[WorkflowStep] = Field(default_factory=list)
    system_deps: List[str] = Field(default_factory=list)
    output_dir: str = ""
    output_path: str = ""

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        source = self._generate_for_steps(self.source_steps, target, env, "source")
        deps = self._generate_for_steps(self.deps_steps, target, env, "dependency")
        build = self._generate_for_steps(self.build_steps, target, env, "build")
        final_deps: List[str] = []
        for dep in [*self.system_deps, *source.needs, *deps.needs, *build.needs]:
            if dep not in final_deps:
                final_deps.append(dep)
        if self.output_path:
            path = self.output_path
        else:
            path = join_output_path(self.location.model_copy(update={"dir": self.output_dir or self.location.dir}), target.artifact)
        return Instructions(
            location=self.location,
            system_deps=final_deps,
            source=source.script,
            deps=deps.script,
            build=build.script,
            output_path=path,
        )

    def _generate_for_steps(self, steps: List[WorkflowStep], target: Target, env: BuildEnv, phase: str) -> _Task:
        scripts: List[str] = []
        needs: List[str] = []
        for step in steps:
            try:
                task = self._generate_for_step(step, target, env)
            except InferenceError as exc:
                raise InferenceError(f"generating {phase} steps: {exc}") from exc
            scripts.append(task.script)
            needs.extend(task.needs)
        return _Task(script="\n".join(scripts), needs=needs)

    def _generate_for_step(self, step: WorkflowStep, target: Target, env: BuildEnv) -> _Task:
        if bool(step.runs) == bool(step.uses):
            raise InferenceError("exactly one of 'runs' or 'uses' must be provided")
        ctx = StepContext(with_=dict(step.with_), target=target, env=env, location=self.location)
        if step.runs:
            return _Task(script=expand_placeholders(step.runs, ctx))
        tool = TOOLKIT.get(step.uses)
        if tool is None:
            raise InferenceError(f"unknown 'uses' tool: {step.uses}")
        ctx.with_ = {key: expand_placeholders(value, ctx) for key, value in step.with_.items()}
        return _Task(script=tool.render(ctx), needs=list(tool.needs))


class Flowable:
    """Mixin for strategies that render through an equivalent workflow."""

    def to_workflow(self) -> WorkflowStrategy:
        raise NotImplementedError

    def generate_for(self, target: Target, env: BuildEnv) -> Instructions:
        return self.to_workflow().generate_for(target, env)
