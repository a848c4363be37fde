# platcov_workflow.py
# Platform & Coverage workflow for this repository. The jobs come from
# platcov.pipeline; only the knobs a project usually changes are spelled out.
from __future__ import annotations

from platcov.dsl import wf
from platcov.model import UploadPolicy
from platcov.pipeline import coverage_job, cross_platform_job


def workflow():
    return wf(
        # library unit tests, default features off
        cross_platform_job(runs_on="windows-latest"),

        # whole-workspace coverage; binaries and the TUI layer are left out
        coverage_job(
            runs_on="ubuntu-latest",
            exclude=r"src/bin/.*|src/tui/.*\.rs",
            report="lcov.info",
            upload_policy=UploadPolicy.STRICT,
        ),
    )
