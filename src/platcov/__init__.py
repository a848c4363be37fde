__version__ = "0.1.0"

from .dsl import job, sh, on, wf
from .model import Job, Step, TriggerEvent, UploadPolicy, ColorMode, ExclusionPattern, PipelineConfig
from .runner import run_pipeline, run_job, select_jobs, load_workflow
from .pipeline import default_workflow

__all__ = [
    "job", "sh", "on", "wf",
    "Job", "Step", "TriggerEvent", "UploadPolicy", "ColorMode", "ExclusionPattern", "PipelineConfig",
    "run_pipeline", "run_job", "select_jobs", "load_workflow", "default_workflow",
]
