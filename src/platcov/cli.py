# cli.py
from __future__ import annotations

import platform
import subprocess
import sys
from pathlib import Path
from typing import List

import click

from platcov.cache import compute_cache_key
from platcov.context import RunContext
from platcov.coverage import load_report, summarize
from platcov.errors import CIError, ConfigError, CoverageError, UploadError
from platcov.git_facts.git import current_branch, get_remote_url, head_sha
from platcov.model import (
    EVENT_KINDS,
    DEFAULT_LOCK_GLOB,
    CacheSpec,
    ColorMode,
    ExclusionPattern,
    Job,
    PipelineConfig,
    TriggerEvent,
    UploadPolicy,
    host_os,
)
from platcov.pipeline import default_workflow
from platcov.runner import load_workflow, pipeline_failed, run_pipeline, select_jobs
from platcov.settings import DEFAULT_TOKEN_ENV, EnvSecretStore, load_settings
from platcov.step_workflows.coverage import DEFAULT_EXCLUDE
from platcov.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW_FILE = "platcov_workflow.py"


def find_workflow_files(root: Path) -> list[Path]:
    """Workflow files in the workspace root: platcov_workflow.py and *_workflow.py."""
    workflow_files = []
    default_workflow_file = root / DEFAULT_WORKFLOW_FILE
    if default_workflow_file.exists():
        workflow_files.append(default_workflow_file)
    for path in root.glob("*_workflow.py"):
        if path != default_workflow_file:
            workflow_files.append(path)
    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None, root: Path) -> tuple[List[Job], str]:
    """
    Load the workflow from the argument, from the workspace, or fall back to
    the built-in Platform & Coverage pipeline.

    Raises:
        SystemExit: If the workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  platcov run --workflow my_workflow.py",
            )
            sys.exit(1)
        return load_workflow(workflow_path), workflow_path.name

    workflow_files = find_workflow_files(root)
    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f.name}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  platcov run --workflow {DEFAULT_WORKFLOW_FILE}",
        )
        sys.exit(1)
    if workflow_files:
        return load_workflow(workflow_files[0]), workflow_files[0].name

    console.print_debug("No workflow file found, using the built-in pipeline")
    return default_workflow(), "<built-in>"


def _git_or_none(fn, *args):
    try:
        return fn(*args)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def _build_event(kind: str, branch: str | None, base: str | None) -> TriggerEvent:
    if kind == "pull_request" and base is None:
        base = "main"
    return TriggerEvent(kind=kind, branch=branch, base_branch=base)


def _filter_named(jobs: List[Job], names: tuple[str, ...]) -> List[Job]:
    if not names:
        return jobs
    known = {j.name for j in jobs}
    missing = sorted(set(names) - known)
    if missing:
        raise ConfigError(f"unknown job(s): {missing}", known=sorted(known))
    return [j for j in jobs if j.name in names]


event_options = [
    click.option(
        "--event",
        "event_kind",
        default="workflow_dispatch",
        show_default=True,
        help=f"Trigger event ({', '.join(EVENT_KINDS)})",
    ),
    click.option("--branch", default=None, help="Pushed / head branch (defaults to the current git branch)"),
    click.option("--base", default=None, help="Pull request target branch (defaults to main)"),
]


def with_event_options(fn):
    for opt in reversed(event_options):
        fn = opt(fn)
    return fn


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """platcov: platform tests + coverage pipeline runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW_FILE} if present)")
@with_event_options
@click.option("--job", "job_names", multiple=True, help="Only run the named job (repeatable)")
@click.option("--commit", default=None, help="Commit SHA reported with the coverage upload (defaults to HEAD)")
@click.option("--workspace", default=".", show_default=True, help="Cargo workspace root")
@click.option("--cache-dir", default=None, help="Cache directory (env: PLATCOV_CACHE_DIR)")
@click.option("--no-cache", is_flag=True, default=False, help="Disable dependency caching")
@click.option("--workers", default=None, type=int, help="Number of parallel jobs")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Cancel jobs not yet started after the first failure")
@click.option("--all-platforms", is_flag=True, default=False, help="Run jobs meant for other operating systems on this host")
@click.option(
    "--color",
    type=click.Choice([c.value for c in ColorMode]),
    default=None,
    help="Color setting passed to cargo (env: PLATCOV_COLOR)",
)
@click.pass_context
def run(ctx, workflow, event_kind, branch, base, job_names, commit, workspace, cache_dir, no_cache,
        workers, fail_fast, all_platforms, color):
    """Run the pipeline for a trigger event."""
    console = get_console()
    root = Path(workspace).resolve()

    try:
        settings = load_settings()
        jobs, workflow_name = discover_workflow(workflow, root)
        jobs = _filter_named(jobs, job_names)

        branch = branch or settings.branch or _git_or_none(current_branch, root)
        commit = commit or settings.commit or _git_or_none(head_sha, root)
        event = _build_event(event_kind, branch, base)

        remote = _git_or_none(get_remote_url, "origin", root)
        repo_name = remote.rstrip("/").split("/")[-1].replace(".git", "") if remote else root.name

        console.print_run_started(
            repository=repo_name,
            workflow=workflow_name,
            event=event.kind,
            job_count=len(jobs),
        )
        if not event.recognized:
            console.print_info(f"Event {event.kind!r} does not trigger this pipeline; nothing to run.")
            return

        run_ctx = RunContext(
            workspace=root,
            config=PipelineConfig(color=ColorMode(color) if color else settings.color),
            console=console,
            secrets=EnvSecretStore(),
            commit=commit,
            branch=branch,
            codecov_url=settings.codecov_url,
        )
        results = run_pipeline(
            jobs,
            event,
            run_ctx,
            cache_root=None if no_cache else (cache_dir or settings.cache_dir),
            host_os=None if all_platforms else host_os(platform.system()),
            max_workers=workers,
            fail_fast=fail_fast,
        )

        console.print_results({name: r.status for name, r in results.items()})
        if pipeline_failed(results):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (CIError, FileNotFoundError, TypeError, ValueError) as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW_FILE} if present)")
@with_event_options
@click.option("--workspace", default=".", show_default=True, help="Cargo workspace root")
def plan(workflow, event_kind, branch, base, workspace):
    """Show which jobs an event would run, with their cache keys."""
    console = get_console()
    root = Path(workspace).resolve()
    try:
        settings = load_settings()
        jobs, workflow_name = discover_workflow(workflow, root)
    except (CIError, FileNotFoundError, TypeError, ValueError) as e:
        console.print_exception(e)
        sys.exit(1)

    branch = branch or settings.branch or _git_or_none(current_branch, root)
    event = _build_event(event_kind, branch, base)
    console.print_info(f"Plan for {event.kind} ({workflow_name}):")
    selected = select_jobs(jobs, event, print_plan=True, console=console)
    for j in selected:
        if j.cache is not None and j.cache.enabled:
            console.print_cache_key(j.name, compute_cache_key(j.os, root, j.cache))
    if not selected:
        console.print_info("No jobs selected.")


@cli.command("cache-key")
@click.option("--os", "os_id", default=None, help="Runner OS identifier (Windows, Linux, macOS); defaults to this host")
@click.option("--workspace", default=".", show_default=True, help="Cargo workspace root")
@click.option("--lock-glob", default=DEFAULT_LOCK_GLOB, show_default=True, help="Lock files to hash")
def cache_key(os_id, workspace, lock_glob):
    """Print the dependency cache key."""
    os_id = os_id or host_os(platform.system())
    click.echo(compute_cache_key(os_id, workspace, CacheSpec(lock_glob=lock_glob)))


@cli.command("coverage-summary")
@click.argument("report", type=click.Path(dir_okay=False))
@click.option(
    "--exclude",
    default=DEFAULT_EXCLUDE,
    show_default=True,
    help="Regex of source paths left out of the totals ('' for none)",
)
def coverage_summary(report, exclude):
    """Line coverage of an lcov report over the non-excluded files."""
    console = get_console()
    try:
        exclusion = ExclusionPattern(exclude) if exclude else None
        summary = summarize(load_report(report), exclusion)
    except (ConfigError, CoverageError) as e:
        console.print_exception(e)
        sys.exit(1)

    for f in summary.files:
        pct = 100.0 * f.covered_lines / f.total_lines if f.total_lines else 0.0
        click.echo(f"{pct:6.2f}%  {f.covered_lines:>6}/{f.total_lines:<6} {f.path}")
    for path in summary.excluded:
        click.echo(f"{'excluded':>7}  {'':>13} {path}")
    click.echo(f"TOTAL {summary.line_percent:.2f}% ({summary.covered_lines}/{summary.total_lines})")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option("--token-env", default=DEFAULT_TOKEN_ENV, show_default=True, help="Environment variable holding the upload token")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in UploadPolicy]),
    default=UploadPolicy.STRICT.value,
    show_default=True,
    help="strict: exit 1 on upload errors; best-effort: warn only",
)
@click.option("--commit", default=None, help="Commit SHA (defaults to HEAD)")
@click.option("--branch", default=None, help="Branch (defaults to the current git branch)")
@click.option("--url", default=None, help="Codecov URL (env: CODECOV_URL)")
@click.option("--verbose/--quiet", default=True, show_default=True)
def upload(files, token_env, policy, commit, branch, url, verbose):
    """Upload coverage reports to Codecov."""
    from platcov.uploader import CodecovClient

    console = get_console()
    try:
        settings = load_settings()
    except ConfigError as e:
        console.print_exception(e)
        sys.exit(1)
    token = EnvSecretStore().get(token_env)
    if token is None:
        console.print_warning(f"{token_env} is not set; uploading without a token")

    client = CodecovClient(
        token,
        url or settings.codecov_url,
        log=console.print_info if verbose else None,
    )
    try:
        result = client.upload(
            files,
            commit=commit or settings.commit or _git_or_none(head_sha) or "",
            branch=branch or settings.branch or _git_or_none(current_branch),
        )
    except UploadError as e:
        if UploadPolicy(policy) is UploadPolicy.STRICT:
            console.print_exception(e)
            sys.exit(1)
        console.print_warning(f"coverage upload failed, continuing: {e.message}")
        return
    console.print_info(f"coverage uploaded: {result.report_url}")


if __name__ == "__main__":
    cli()
