import logging
import time
from typing import List, Optional

from .models import ConfirmationCounters, RunResult, RunTotals, StepResult

logger = logging.getLogger(__name__)


class RunAggregator:
    def __init__(self, start_url: str = ""):
        self.start_url = start_url
        self.steps: List[StepResult] = []
        self.errors: List[str] = []
        self.confirmation: Optional[ConfirmationCounters] = None
        self.started_at = time.monotonic()

    def add_step(self, step: StepResult) -> None:
        step.fields_found = len(step.records)
        step.fields_completed = sum(1 for r in step.records if r.completed)
        self.steps.append(step)
        logger.info(f"Step {step.index} '{step.title}': {step.fields_completed}/{step.fields_found} "
                    f"field(s) completed in {step.elapsed_time:.1f}s")

    def add_error(self, message: str) -> None:
        logger.error(message)
        self.errors.append(message)

    def set_confirmation(self, counters: ConfirmationCounters) -> None:
        self.confirmation = counters

    def totals(self, elapsed: float) -> RunTotals:
        found = sum(s.fields_found for s in self.steps)
        completed = sum(s.fields_completed for s in self.steps)
        required_incomplete = sum(1 for s in self.steps for r in s.records if r.required and not r.completed)
        return RunTotals(
            fields_found=found,
            fields_completed=completed,
            required_incomplete=required_incomplete,
            success_rate=round(completed / found * 100, 2) if found else 0.0,
            fields_per_second=round(completed / elapsed, 2) if elapsed > 0 else 0.0,
            average_step_seconds=round(elapsed / len(self.steps), 2) if self.steps else 0.0,
        )

    def finalize(self, aborted: bool = False, message: str = "") -> RunResult:
        elapsed = time.monotonic() - self.started_at
        totals = self.totals(elapsed)
        succeeded = not aborted and bool(self.steps) and totals.required_incomplete == 0
        if not message:
            if aborted:
                message = "Run aborted"
            elif not self.steps:
                message = "No steps were processed"
            elif totals.required_incomplete:
                message = f"{totals.required_incomplete} required field(s) left incomplete"
            else:
                message = "All reachable required fields completed"
        result = RunResult(
            succeeded=succeeded,
            start_url=self.start_url,
            message=message,
            steps=list(self.steps),
            totals=totals,
            errors=list(self.errors),
            confirmation=self.confirmation,
            elapsed_seconds=round(elapsed, 2),
        )
        logger.info(f"Run finished: succeeded={succeeded}, {totals.fields_completed}/{totals.fields_found} "
                    f"field(s), {totals.success_rate}% success, {len(self.errors)} error(s)")
        return result
