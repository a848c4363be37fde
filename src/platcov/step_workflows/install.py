# step_workflows/install.py
from __future__ import annotations

import subprocess
from typing import List, Optional, Sequence

from ..context import RunContext, run_command
from ..model import Job, Step


# ---------------------------------------------------------------------
# Tool install step helper
# ---------------------------------------------------------------------

def install_step(
    name: str,
    tool: str,
    *,
    install: Sequence[Sequence[str]],
    check: Optional[Sequence[str]] = None,
    cwd: str | None = None,
) -> Step:
    """
    Ensure a tool is available.

    If `check` runs successfully the tool is already there and nothing is
    installed. Without a check the install commands always run, so they have
    to be idempotent (e.g. `rustup component add`).
    """
    if not install:
        raise ValueError(f"install_step({name!r}) needs at least one install command")
    data = {
        "tool": tool,
        "check": list(check) if check else None,
        "install": [list(c) for c in install],
    }
    return Step(name=name, run=f"ensure {tool}", cwd=cwd, kind="install", data=data)


# ---------------------------------------------------------------------
# Tool install step execution
# ---------------------------------------------------------------------

def _already_installed(check: List[str], ctx: RunContext, job: Job, step: Step) -> bool:
    try:
        proc = subprocess.run(
            check,
            cwd=str(ctx.step_cwd(job, step)),
            env=ctx.step_env(job),
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False
    return proc.returncode == 0


def run_step(job: Job, step: Step, ctx: RunContext) -> None:
    data = step.data or {}
    tool = data.get("tool", step.name)

    check = data.get("check")
    if check and _already_installed(check, ctx, job, step):
        ctx.console.print_info(f"[{job.name}] {tool} already installed")
        return

    for cmd in data.get("install") or []:
        run_command(ctx, job, step, cmd, kind="tool_install_failure")
    ctx.console.print_info(f"[{job.name}] {tool} installed")
