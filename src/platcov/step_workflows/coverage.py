# step_workflows/coverage.py
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from ..context import RunContext, run_command
from ..coverage import CoverageSummary, load_report, summarize
from ..errors import CoverageError
from ..model import ExclusionPattern, Job, Step

# entry-point binaries and the terminal UI layer are not library logic
DEFAULT_EXCLUDE = r"src/bin/.*|src/tui/.*\.rs"
DEFAULT_REPORT = "lcov.info"


# ---------------------------------------------------------------------
# Coverage step helper
# ---------------------------------------------------------------------

def coverage_step(
    name: str,
    *,
    exclude: str | ExclusionPattern | None = DEFAULT_EXCLUDE,
    output_path: str = DEFAULT_REPORT,
    workspace: bool = True,
    tool: Sequence[str] = ("cargo", "llvm-cov"),
    args: Sequence[str] = (),
    cwd: str | None = None,
) -> Step:
    """
    Create a step that runs the whole test suite under llvm-cov and writes
    an lcov report.

    The exclusion pattern is compiled here, so a malformed regex fails when
    the workflow is defined instead of after the test suite has run.
    """
    if isinstance(exclude, str):
        exclude = ExclusionPattern(exclude)
    data = {
        "tool": list(tool),
        "workspace": workspace,
        "output_path": output_path,
        "exclude": exclude,
        "args": list(args),
    }
    return Step(name=name, run=" ".join(coverage_command(data)), cwd=cwd, kind="coverage", data=data)


def coverage_command(data: dict) -> List[str]:
    cmd = list(data.get("tool") or ["cargo", "llvm-cov"])
    if data.get("workspace", True):
        cmd.append("--workspace")
    cmd.extend(["--lcov", "--output-path", data.get("output_path", DEFAULT_REPORT)])
    exclude = data.get("exclude")
    if exclude is not None:
        cmd.extend(["--ignore-filename-regex", str(exclude)])
    cmd.extend(data.get("args") or [])
    return cmd


# ---------------------------------------------------------------------
# Coverage step execution
# ---------------------------------------------------------------------

def run_step(job: Job, step: Step, ctx: RunContext) -> CoverageSummary:
    data = step.data or {}
    report = ctx.step_cwd(job, step) / data.get("output_path", DEFAULT_REPORT)

    # never let a report from an earlier run reach the uploader
    if report.exists():
        report.unlink()

    run_command(ctx, job, step, coverage_command(data), kind="coverage_failure")

    if not report.is_file():
        raise CoverageError(
            "coverage tool exited successfully but produced no report",
            job=job.name,
            step=step.name,
            path=str(report),
        )
    try:
        records = load_report(report)
    except CoverageError as e:
        raise CoverageError(e.message, job=job.name, step=step.name, **e.details) from e

    summary = summarize(records, data.get("exclude"))
    ctx.console.print_coverage_summary(job.name, summary, Path(report).name)
    return summary
