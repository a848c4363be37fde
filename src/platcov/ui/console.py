"""Console output formatting utilities for platcov."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Mapping, Optional

if TYPE_CHECKING:
    from ..coverage import CoverageSummary


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
                   and the stdout/stderr of every command
        """
        self.debug = debug
        # jobs run on worker threads; keep multi-line blocks together
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(
        self,
        repository: str,
        workflow: str,
        event: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "",
            "RUN STARTED",
            f"Repository: {repository}",
            f"Workflow: {workflow}",
            f"Event: {event}",
            f"Jobs: {job_count}",
            "",
        )

    def print_job_start(self, name: str, runs_on: str) -> None:
        self._emit("", f"JOB STARTED: {name} ({runs_on})")

    def print_step(self, job: str, name: str) -> None:
        self._emit(f"[{job}] STEP: {name}")

    def print_output(self, job: str, stdout: str, stderr: str) -> None:
        """Command output, shown only in debug mode."""
        if not self.debug:
            return
        lines = [f"[{job}] | {ln}" for ln in (stdout or "").splitlines()]
        lines += [f"[{job}] ! {ln}" for ln in (stderr or "").splitlines()]
        if lines:
            self._emit(*lines)

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        output: Optional[str] = None,
    ) -> None:
        """Print a job failure, with the first line of the reason unless debugging."""
        lines = [f"JOB FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"Error: {error_line}")
        if output:
            lines.append("Output (tail):")
            lines.extend(f"  {ln}" for ln in output.rstrip().splitlines()[-20:])
        self._emit(*lines)

    def print_cache_key(self, job: str, key: str) -> None:
        self._emit(f"[{job}] CACHE: key {key}")

    def print_cache_hit(self, job: str, reason: str) -> None:
        self._emit(f"[{job}] CACHE: hit ({reason})")

    def print_cache_miss(self, job: str) -> None:
        self._emit(f"[{job}] CACHE: miss")

    def print_cache_saved(self, job: str, key: str) -> None:
        self._emit(f"[{job}] CACHE: saved ({key})")

    def print_coverage_summary(self, job: str, summary: "CoverageSummary", report: str) -> None:
        lines = [
            f"[{job}] COVERAGE: {summary.line_percent:.2f}% lines "
            f"({summary.covered_lines}/{summary.total_lines}) in {len(summary.files)} file(s) [{report}]"
        ]
        if summary.excluded:
            lines.append(f"[{job}] COVERAGE: excluded {len(summary.excluded)} file(s)")
        self._emit(*lines)

    def print_plan_job(self, name: str, reason: str) -> None:
        self._emit(f"  {name} ({reason})")

    def print_plan_job_skipped(self, name: str, reason: str) -> None:
        self._emit(f"  {name} (skipped: {reason})")

    def print_results(self, results: Mapping[str, str]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for job, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            lines.append(f"  {job}: {status_display}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = ["", f"ERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.extend(["", suggestion])
        self._emit(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_warning(self, message: str) -> None:
        self._emit(f"WARNING: {message}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
