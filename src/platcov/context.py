# context.py
from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .errors import StepFailure, TOOL_HINTS
from .model import Job, PipelineConfig, Step
from .settings import DEFAULT_CODECOV_URL, EnvSecretStore, Secret
from .ui.console import Console, get_console
from .uploader import CodecovClient


def default_uploader_factory(base_url: str, console: Console) -> Callable[[Secret | None, bool], CodecovClient]:
    def factory(token: Secret | None, verbose: bool) -> CodecovClient:
        return CodecovClient(token, base_url, log=console.print_info if verbose else None)
    return factory


@dataclass
class RunContext:
    """
    Everything a step needs besides its own definition.

    Steps read configuration from here rather than from process-wide state,
    so a job's behaviour depends only on what it is handed.
    """
    workspace: Path
    config: PipelineConfig = field(default_factory=PipelineConfig)
    console: Console = field(default_factory=get_console)
    secrets: EnvSecretStore = field(default_factory=EnvSecretStore)
    commit: str | None = None
    branch: str | None = None
    codecov_url: str = DEFAULT_CODECOV_URL
    uploader_factory: Optional[Callable[[Secret | None, bool], object]] = None

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace).resolve()
        if self.uploader_factory is None:
            self.uploader_factory = default_uploader_factory(self.codecov_url, self.console)

    def step_env(self, job: Job) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.config.step_env())
        env.update(job.env or {})
        return env

    def step_cwd(self, job: Job, step: Step) -> Path:
        cwd = (self.workspace / (step.cwd or ".")).resolve()
        if not cwd.exists():
            raise FileNotFoundError(f"[{job.name}] step '{step.name}' cwd not found: {cwd}")
        return cwd


def run_command(
    ctx: RunContext,
    job: Job,
    step: Step,
    cmd: List[str] | str,
    *,
    kind: str = "step_failure",
) -> subprocess.CompletedProcess:
    """
    Run one command for a step; raise StepFailure on a non-zero exit.

    A list is executed directly; a string goes through the shell.
    """
    shell = isinstance(cmd, str)
    display = cmd if shell else " ".join(cmd)
    ctx.console.print_debug(f"[{job.name}] $ {display}")

    try:
        proc = subprocess.run(
            cmd,
            shell=shell,
            cwd=str(ctx.step_cwd(job, step)),
            env=ctx.step_env(job),
            text=True,
            capture_output=True,  # so we can show output on failure
        )
    except FileNotFoundError:
        tool = display.split()[0] if display else ""
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=display,
            exit_code=127,
            kind=kind,
            stderr=f"{tool}: command not found. {TOOL_HINTS.get(tool, '')}".strip(),
        ) from None

    ctx.console.print_output(job.name, proc.stdout, proc.stderr)

    if proc.returncode != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=display,
            exit_code=proc.returncode,
            kind=kind,
            stdout=proc.stdout[-4000:],
            stderr=proc.stderr[-4000:],
        )
    return proc
