# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigError(CIError):
    """Invalid workflow definition, raised before anything runs."""

    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(kind="config_error", job=job, step=step, message=message, details=details)


class CoverageError(CIError):
    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(kind="coverage_failure", job=job, step=step, message=message, details=details)


class UploadError(CIError):
    def __init__(self, message: str, *, job: str = "", step: str | None = None, **details):
        super().__init__(kind="upload_failure", job=job, step=step, message=message, details=details)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    kind: str = "step_failure"
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo-llvm-cov": "Install with `cargo install cargo-llvm-cov --locked`.",
    "llvm-tools-preview": "Install with `rustup component add llvm-tools-preview`.",
}
