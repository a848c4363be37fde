# pipeline.py
# The "Platform & Coverage" pipeline: a portability run of the unit tests on
# Windows and a full coverage run on Linux that is published to Codecov.
from __future__ import annotations

from typing import List

from .dsl import job, on, wf
from .model import Job, UploadPolicy
from .step_workflows.coverage import DEFAULT_EXCLUDE, DEFAULT_REPORT, coverage_step
from .step_workflows.install import install_step
from .step_workflows.test import cargo_test_step
from .step_workflows.upload import upload_step

MAIN_BRANCHES = ["main"]


def cross_platform_job(runs_on: str = "windows-latest") -> Job:
    return job(
        "cross-platform",
        cargo_test_step("Run unit tests only"),
        runs_on=runs_on,
        display_name="Cross-platform tests",
        triggers=on(push=MAIN_BRANCHES, pull_request=MAIN_BRANCHES),
    )


def coverage_job(
    runs_on: str = "ubuntu-latest",
    *,
    exclude: str = DEFAULT_EXCLUDE,
    report: str = DEFAULT_REPORT,
    upload_policy: UploadPolicy = UploadPolicy.STRICT,
) -> Job:
    return job(
        "coverage",
        install_step(
            "Install llvm-tools-preview",
            "llvm-tools-preview",
            install=[["rustup", "component", "add", "llvm-tools-preview"]],
        ),
        install_step(
            "Install cargo-llvm-cov",
            "cargo-llvm-cov",
            check=["cargo", "llvm-cov", "--version"],
            install=[["cargo", "install", "cargo-llvm-cov", "--locked"]],
        ),
        coverage_step("Generate code coverage", exclude=exclude, output_path=report),
        upload_step("Upload coverage to Codecov", files=[report], policy=upload_policy, verbose=True),
        runs_on=runs_on,
        display_name="Code coverage",
        triggers=on(push=MAIN_BRANCHES, pull_request=MAIN_BRANCHES),
    )


def default_workflow() -> List[Job]:
    return wf(cross_platform_job(), coverage_job())
