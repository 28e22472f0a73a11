from .base import PipelineRun, PipelineStage, StageResult
from .report import ReportPipeline
from .scheduler import (
    BusinessRunResult, RunAllSummary, SchedulerHandle,
    SchedulerOrchestrator, next_weekly_run,
)

__all__ = [
    "PipelineRun", "PipelineStage", "StageResult",
    "ReportPipeline",
    "BusinessRunResult", "RunAllSummary", "SchedulerHandle",
    "SchedulerOrchestrator", "next_weekly_run",
]
