from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("librarian.pipeline")


@dataclass
class PipelineStep:
    """One named stage of the per-message routing pipeline."""
    name: str
    fn: Callable[[object], None]
    skip_if: Optional[Callable[[object], bool]] = None


class StepPipeline:
    """Runs an ordered list of steps over a mutable context object."""

    def __init__(self, steps: List[PipelineStep]) -> None:
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: object) -> List[str]:
        """Purpose: Execute steps in order, honoring each skip_if.
        Inputs/Outputs: Input is a mutable context; output is the names of the steps
            that actually ran, in order.
        Side Effects / State: Step functions mutate the context; each step is logged with
            its elapsed time at DEBUG.
        Dependencies: PipelineStep.fn and PipelineStep.skip_if.
        Failure Modes: Exceptions in step functions propagate to the caller; later steps
            do not run.
        If Removed: No message is ever routed.
        Testing Notes: A skip_if that returns True keeps the step out of the result list.
        """
        executed: List[str] = []
        for step in self._steps:
            if step.skip_if and step.skip_if(context):
                logger.debug("step=%s skipped", step.name)
                continue
            started = time.perf_counter()
            step.fn(context)
            executed.append(step.name)
            logger.debug("step=%s done elapsed_ms=%.1f", step.name, (time.perf_counter() - started) * 1000)
        return executed
