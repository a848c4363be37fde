# step_workflows/test.py
from __future__ import annotations

from typing import List, Sequence

from ..context import RunContext, run_command
from ..model import Job, Step


# ---------------------------------------------------------------------
# Test step helper
# ---------------------------------------------------------------------

def cargo_test_step(
    name: str,
    *,
    lib_only: bool = True,
    workspace: bool = True,
    default_features: bool = False,
    features: Sequence[str] = (),
    args: Sequence[str] = (),
    cargo: str = "cargo",
    cwd: str | None = None,
) -> Step:
    """
    Create a `cargo test` step.

    The defaults are the portability run: unit tests in library targets only
    (no integration tests under tests/), every workspace member, and no
    default features, so feature-gated tests are not compiled at all.
    """
    data = {
        "cargo": cargo,
        "lib_only": lib_only,
        "workspace": workspace,
        "default_features": default_features,
        "features": list(features),
        "args": list(args),
    }
    return Step(name=name, run=" ".join(cargo_test_command(data)), cwd=cwd, kind="test", data=data)


def cargo_test_command(data: dict) -> List[str]:
    cmd = [data.get("cargo", "cargo"), "test"]
    if data.get("lib_only", True):
        cmd.append("--lib")
    if data.get("workspace", True):
        cmd.append("--workspace")
    if not data.get("default_features", False):
        cmd.append("--no-default-features")
    features = data.get("features") or []
    if features:
        cmd.extend(["--features", ",".join(features)])
    cmd.extend(data.get("args") or [])
    return cmd


# ---------------------------------------------------------------------
# Test step execution
# ---------------------------------------------------------------------

def run_step(job: Job, step: Step, ctx: RunContext) -> None:
    """Run the test command; any failing test fails the job."""
    run_command(ctx, job, step, cargo_test_command(step.data or {}), kind="test_failure")
