# src/platcov/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .model import CacheSpec, DEFAULT_CACHE_PATHS, DEFAULT_LOCK_GLOB, Job, Step, Triggers, runner_os


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on(
    *,
    push: Iterable[str] = ("main",),
    pull_request: Iterable[str] = ("main",),
    workflow_dispatch: bool = True,
) -> Triggers:
    """
    Event filter for a job.

        on(push=["main"], pull_request=["main"], workflow_dispatch=True)
    """
    return Triggers(
        push=tuple(push),
        pull_request=tuple(pull_request),
        workflow_dispatch=workflow_dispatch,
    )


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    runs_on: str,
    display_name: str | None = None,
    triggers: Optional[Triggers] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
    cache_enabled: bool = True,
    cache_paths: Optional[List[str]] = None,
    lock_glob: str = DEFAULT_LOCK_GLOB,
) -> Job:
    steps_final = list(steps)
    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    # fail at definition time, not halfway through a run
    runner_os(runs_on)

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    cache = None
    if cache_enabled:
        cache = CacheSpec(
            paths=tuple(cache_paths if cache_paths is not None else DEFAULT_CACHE_PATHS),
            lock_glob=lock_glob,
        )

    return Job(
        name=name,
        runs_on=runs_on,
        steps=steps_final,
        display_name=display_name,
        env={k: str(v) for k, v in (env or {}).items()},
        triggers=triggers or Triggers(),
        cache=cache,
    )


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Job) -> List[Job]:
    """
    Workflow definition helper.

    Users can write:
        from platcov import wf, job, sh

        def workflow():
            return wf(
                job(...),
                job(...),
            )

    Or use JOBS directly:
        JOBS = wf(job(...), job(...))
    """
    return list(jobs)
