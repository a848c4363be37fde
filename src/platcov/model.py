# model.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, List, Optional

from .errors import ConfigError


PUSH = "push"
PULL_REQUEST = "pull_request"
WORKFLOW_DISPATCH = "workflow_dispatch"
EVENT_KINDS = (PUSH, PULL_REQUEST, WORKFLOW_DISPATCH)

DEFAULT_CACHE_PATHS = [
    "~/.cargo/bin/",
    "~/.cargo/registry/index/",
    "~/.cargo/registry/cache/",
    "~/.cargo/git/db/",
    "target/",
]
DEFAULT_LOCK_GLOB = "**/Cargo.lock"

# runs-on label prefix -> OS identifier used in cache keys
RUNNER_OS_PREFIXES = {
    "windows": "Windows",
    "ubuntu": "Linux",
    "linux": "Linux",
    "macos": "macOS",
}


class ColorMode(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    AUTO = "auto"

    def env(self) -> Dict[str, str]:
        return {"CARGO_TERM_COLOR": self.value}


class UploadPolicy(str, Enum):
    """What a failed coverage upload means for the job."""
    STRICT = "strict"            # upload failure fails the job
    BEST_EFFORT = "best-effort"  # upload failure is reported and ignored


@dataclass(frozen=True)
class TriggerEvent:
    """
    An external event that instantiates the pipeline.

    branch: pushed branch (push) or head branch (pull_request)
    base_branch: target branch of a pull request
    """
    kind: str
    branch: str | None = None
    base_branch: str | None = None

    @property
    def recognized(self) -> bool:
        return self.kind in EVENT_KINDS


@dataclass(frozen=True)
class Triggers:
    """Per-job event filter (`on:` block)."""
    push: tuple[str, ...] = ("main",)
    pull_request: tuple[str, ...] = ("main",)
    workflow_dispatch: bool = True

    def matches(self, event: TriggerEvent) -> bool:
        if event.kind == PUSH:
            return event.branch in self.push
        if event.kind == PULL_REQUEST:
            return event.base_branch in self.pull_request
        if event.kind == WORKFLOW_DISPATCH:
            return self.workflow_dispatch
        return False


@dataclass(frozen=True)
class ExclusionPattern:
    """
    Compiled path matcher for coverage exclusion.

    Matches with regex *search* semantics against the POSIX form of a path,
    which is what llvm-cov's --ignore-filename-regex does.
    """
    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ConfigError("exclusion pattern must not be empty")
        try:
            compiled = re.compile(self.pattern)
        except re.error as e:
            raise ConfigError(f"invalid exclusion pattern {self.pattern!r}: {e}") from e
        object.__setattr__(self, "_regex", compiled)

    def matches(self, path: str | PurePath) -> bool:
        text = path.as_posix() if isinstance(path, PurePath) else str(path).replace("\\", "/")
        return self._regex.search(text) is not None

    def __str__(self) -> str:
        return self.pattern


@dataclass(frozen=True)
class CacheSpec:
    paths: tuple[str, ...] = tuple(DEFAULT_CACHE_PATHS)
    lock_glob: str = DEFAULT_LOCK_GLOB
    enabled: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    """Settings handed to every step instead of ambient process state."""
    color: ColorMode = ColorMode.ALWAYS

    def step_env(self) -> Dict[str, str]:
        return self.color.env()


@dataclass(frozen=True)
class Step:
    """A single unit of work inside a CI job."""
    name: str
    run: str
    cwd: str | None = None
    kind: str = "sh"
    data: Optional[Dict[str, Any]] = None


@dataclass
class Job:
    """A CI job: an execution environment plus an ordered list of steps."""
    name: str
    runs_on: str
    steps: list[Step]
    display_name: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    triggers: Triggers = field(default_factory=Triggers)
    cache: Optional[CacheSpec] = field(default_factory=CacheSpec)

    @property
    def os(self) -> str:
        return runner_os(self.runs_on)

    @property
    def title(self) -> str:
        return self.display_name or self.name


def runner_os(label: str) -> str:
    """Map a runs-on label (e.g. 'windows-latest') to its OS identifier."""
    prefix = label.strip().lower().split("-", 1)[0]
    try:
        return RUNNER_OS_PREFIXES[prefix]
    except KeyError:
        raise ConfigError(
            f"unknown runner label {label!r}",
            known=sorted(RUNNER_OS_PREFIXES),
        ) from None


def host_os(system: str) -> str:
    """Map platform.system() output to the runner OS identifier."""
    return {"Windows": "Windows", "Linux": "Linux", "Darwin": "macOS"}.get(system, system)


def validate_jobs(jobs: List[Job]) -> None:
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigError(f"Duplicate job names found: {dupes}")
    for j in jobs:
        runner_os(j.runs_on)
        if not j.steps:
            raise ConfigError(f"job {j.name!r} must have at least one step", job=j.name)
