"""Pipeline orchestration: fetch, reconcile, then notify once per run."""

from .models import EmployerRunStats, PipelineRunResult
from .runner import SyncPipeline, build_engine

__all__ = [
    "SyncPipeline",
    "build_engine",
    "PipelineRunResult",
    "EmployerRunStats",
]
