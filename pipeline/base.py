"""
Pipeline stage tracking
Local Competitor Watch

Each report generation is one PipelineRun walking
Validating -> Fetching Competitors -> Analyzing -> Persisting -> Done,
with Failed reachable from any stage.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from models.errors import ReportError

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    FETCHING_COMPETITORS = "fetching_competitors"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StageResult:
    """Timing envelope for one completed (or failed) stage."""
    stage: PipelineStage
    success: bool
    duration_seconds: float
    error: Optional[str] = None

    def __repr__(self):
        status = "✅" if self.success else "❌"
        return f"{status} {self.stage.value} ({self.duration_seconds:.2f}s)"


@dataclass
class PipelineRun:
    label: str
    state: PipelineStage = PipelineStage.VALIDATING
    history: List[StageResult] = field(default_factory=list)
    error: Optional[str] = None

    @contextmanager
    def stage(self, stage: PipelineStage) -> Iterator[None]:
        """
        Enter `stage`, time it, and record the outcome. Exceptions propagate
        after the run is marked FAILED. Precondition errors (ReportError with
        a 4xx status) are logged as warnings, everything else as errors.
        """
        self.state = stage
        started = time.perf_counter()
        logger.info(f"[{self.label}] {stage.value} ...")
        try:
            yield
        except Exception as e:
            duration = time.perf_counter() - started
            self.history.append(StageResult(stage, False, duration, str(e)))
            self.state = PipelineStage.FAILED
            self.error = str(e)
            if isinstance(e, ReportError) and e.status_code < 500:
                logger.warning(f"[{self.label}] {stage.value} rejected: {e}")
            else:
                logger.error(f"[{self.label}] {stage.value} failed: {e}")
            raise
        duration = time.perf_counter() - started
        self.history.append(StageResult(stage, True, duration))
        logger.info(f"[{self.label}] {stage.value} completed in {duration:.2f}s")

    def finish(self) -> None:
        self.state = PipelineStage.DONE
        total = sum(r.duration_seconds for r in self.history)
        logger.info(f"✅ [{self.label}] report ready in {total:.2f}s")

    @property
    def failed(self) -> bool:
        return self.state == PipelineStage.FAILED

    def summary(self) -> str:
        lines = [f"Pipeline Summary ({self.label}):"]
        for r in self.history:
            lines.append(f"  {r}")
        return "\n".join(lines)
