# runner.py
from __future__ import annotations

import os
import runpy
import tarfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .cache import CacheStore, compute_cache_key
from .context import RunContext, run_command
from .errors import CIError, ConfigError, StepFailure, TOOL_HINTS
from .model import Job, Step, TriggerEvent, validate_jobs
from .step_workflows import coverage as coverage_workflow
from .step_workflows import install as install_workflow
from .step_workflows import test as test_workflow
from .step_workflows import upload as upload_workflow

# event ---> select jobs ---> (per job, in parallel) restore cache -> steps -> save cache


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Job]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]

    Returns:
      List[Job]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"platcov_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        jobs = globals_dict["workflow"]()
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise TypeError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job] or JOBS = [Job, ...]."
        )

    validate_jobs(jobs)
    return jobs


# ----------------------------------------------------------------------
# Step dispatch
# ----------------------------------------------------------------------

def _run_sh(job: Job, step: Step, ctx: RunContext) -> None:
    run_command(ctx, job, step, step.run)


STEP_EXECUTORS: Dict[str, Callable[[Job, Step, RunContext], Any]] = {
    "sh": _run_sh,
    "install": install_workflow.run_step,
    "test": test_workflow.run_step,
    "coverage": coverage_workflow.run_step,
    "upload": upload_workflow.run_step,
}


def _run_step(job: Job, step: Step, ctx: RunContext) -> Any:
    executor = STEP_EXECUTORS.get(step.kind)
    if executor is None:
        raise ConfigError(f"unknown step kind {step.kind!r}", job=job.name, step=step.name)
    return executor(job, step, ctx)


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------

@dataclass
class JobResult:
    name: str
    status: str  # "ok" | "failed" | "skipped(platform)" | "cancelled"
    cache_key: str | None = None
    cache_hit: bool = False
    outputs: Dict[str, Any] = field(default_factory=dict)  # step name -> value
    error: BaseException | None = None


def run_job(job: Job, ctx: RunContext, cache: CacheStore | None) -> JobResult:
    """
    Run one job: restore cache, run steps in order, save cache.

    The first failing step raises and aborts the remaining steps; the cache
    is only written after every step succeeded.
    """
    console = ctx.console
    console.print_job_start(job.title, job.runs_on)
    result = JobResult(name=job.name, status="running")

    # ---- restore ----
    use_cache = cache is not None and job.cache is not None and job.cache.enabled
    if use_cache:
        result.cache_key = compute_cache_key(job.os, ctx.workspace, job.cache)
        console.print_cache_key(job.name, result.cache_key)
        hit = cache.restore(result.cache_key, job.cache.paths, workspace=ctx.workspace)
        if hit is None:
            console.print_cache_miss(job.name)
        else:
            result.cache_hit = True
            console.print_cache_hit(job.name, hit.reason)

    # ---- run steps ----
    for step in job.steps:
        console.print_step(job.name, step.name)
        result.outputs[step.name] = _run_step(job, step, ctx)

    # ---- save ----
    if use_cache and not result.cache_hit:
        try:
            saved = cache.save(result.cache_key, job.cache.paths, workspace=ctx.workspace)
        except (OSError, tarfile.TarError) as e:
            # a failed save never fails the job
            console.print_warning(f"[{job.name}] cache not saved: {e}")
        else:
            if saved is not None:
                console.print_cache_saved(job.name, result.cache_key)

    result.status = "ok"
    return result


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------

def select_jobs(
    jobs: List[Job],
    event: TriggerEvent,
    *,
    print_plan: bool = False,
    console=None,
) -> List[Job]:
    """Jobs whose triggers match the event. Unknown event kinds select nothing."""
    selected: List[Job] = []
    for j in jobs:
        if j.triggers.matches(event):
            selected.append(j)
            if print_plan and console is not None:
                console.print_plan_job(j.name, f"{event.kind} on {j.runs_on}")
        elif print_plan and console is not None:
            console.print_plan_job_skipped(j.name, f"not triggered by {event.kind}")
    return selected


def _report_failure(ctx: RunContext, job: Job, exc: BaseException) -> None:
    if isinstance(exc, StepFailure):
        tool = exc.cmd.split()[0] if exc.cmd else ""
        ctx.console.print_failure(
            job.title,
            str(exc),
            exit_code=exc.exit_code,
            hint=TOOL_HINTS.get(tool) if exc.exit_code == 127 else None,
            output=exc.stderr or exc.stdout,
        )
    elif isinstance(exc, CIError):
        ctx.console.print_failure(job.title, str(exc))
    else:
        ctx.console.print_failure(job.title, f"{type(exc).__name__}: {exc}")


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    jobs: List[Job],
    event: TriggerEvent,
    ctx: RunContext,
    *,
    cache_root: str | Path | None = ".platcov/cache",
    host_os: Optional[str] = None,
    max_workers: int | None = None,
    fail_fast: bool = False,
    print_plan: bool = True,
) -> Dict[str, JobResult]:
    """
    Run every job the event selects.

    Jobs are independent and run concurrently; a failing job never affects
    another one unless fail_fast is set, in which case jobs that have not
    started yet are cancelled.

    host_os: when set, jobs for a different OS are skipped instead of run.
    """
    validate_jobs(jobs)
    cache = CacheStore(cache_root) if cache_root is not None else None

    results: Dict[str, JobResult] = {}
    to_run: List[Job] = []
    for j in select_jobs(jobs, event, print_plan=print_plan, console=ctx.console):
        if host_os is not None and j.os != host_os:
            results[j.name] = JobResult(name=j.name, status="skipped(platform)")
            if print_plan:
                ctx.console.print_plan_job_skipped(j.name, f"needs {j.os}, host is {host_os}")
            continue
        to_run.append(j)

    if not to_run:
        return results

    if max_workers is None:
        max_workers = max(1, min(len(to_run), os.cpu_count() or 2))

    by_name = {j.name: j for j in to_run}
    pending = list(reversed(to_run))
    failed = False
    in_flight: Dict = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while pending or in_flight:
            while pending and len(in_flight) < max_workers and not (fail_fast and failed):
                j = pending.pop()
                in_flight[pool.submit(run_job, j, ctx, cache)] = j.name

            if not in_flight:
                break

            # wait for one completion, then loop to schedule more
            fut = next(as_completed(list(in_flight.keys())))
            name = in_flight.pop(fut)
            try:
                results[name] = fut.result()
            except Exception as e:
                results[name] = JobResult(name=name, status="failed", error=e)
                _report_failure(ctx, by_name[name], e)
                failed = True

    for j in pending:
        results[j.name] = JobResult(name=j.name, status="cancelled")

    return results


def pipeline_failed(results: Dict[str, JobResult]) -> bool:
    return any(r.status in ("failed", "cancelled") for r in results.values())
