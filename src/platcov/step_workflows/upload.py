# step_workflows/upload.py
from __future__ import annotations

from typing import Sequence

from ..context import RunContext
from ..errors import UploadError
from ..model import Job, Step, UploadPolicy
from ..settings import DEFAULT_TOKEN_ENV
from ..uploader import UploadResult


# ---------------------------------------------------------------------
# Upload step helper
# ---------------------------------------------------------------------

def upload_step(
    name: str,
    *,
    files: Sequence[str] = ("lcov.info",),
    token_env: str = DEFAULT_TOKEN_ENV,
    policy: UploadPolicy | str = UploadPolicy.STRICT,
    verbose: bool = True,
    flags: Sequence[str] = (),
    cwd: str | None = None,
) -> Step:
    """
    Upload coverage reports to Codecov.

    token_env names the secret holding the upload token; the token itself
    never appears in the step definition.
    """
    data = {
        "files": list(files),
        "token_env": token_env,
        "policy": UploadPolicy(policy),
        "verbose": verbose,
        "flags": list(flags),
    }
    return Step(name=name, run=f"codecov upload {' '.join(files)}", cwd=cwd, kind="upload", data=data)


# ---------------------------------------------------------------------
# Upload step execution
# ---------------------------------------------------------------------

def run_step(job: Job, step: Step, ctx: RunContext) -> UploadResult | None:
    data = step.data or {}
    policy = UploadPolicy(data.get("policy", UploadPolicy.STRICT))
    token_env = data.get("token_env", DEFAULT_TOKEN_ENV)

    token = ctx.secrets.get(token_env)
    if token is None:
        ctx.console.print_warning(f"[{job.name}] {token_env} is not set; uploading without a token")

    client = ctx.uploader_factory(token, bool(data.get("verbose", False)))
    try:
        result = client.upload(
            data.get("files") or [],
            commit=ctx.commit or "",
            branch=ctx.branch,
            root=ctx.step_cwd(job, step),
            flags=data.get("flags") or (),
        )
    except UploadError as e:
        e.job = job.name
        e.step = step.name
        if policy is UploadPolicy.STRICT:
            raise
        ctx.console.print_warning(f"[{job.name}] coverage upload failed, continuing: {e.message}")
        return None

    ctx.console.print_info(f"[{job.name}] coverage uploaded: {result.report_url}")
    return result
