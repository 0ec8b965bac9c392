from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("bookbot.pipeline")


@dataclass
class TurnStep:
    """Named step of a chat turn."""
    name: str
    fn: Callable[[Any], None]
    skip_if: Optional[Callable[[Any], bool]] = None
    always_run: bool = False


class TurnPipeline:
    """Ordered step runner for a single chat turn."""

    def __init__(self, steps: List[TurnStep]) -> None:
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: Any) -> None:
        """Purpose: Execute steps in order with optional skip/always-run rules.
        Inputs/Outputs: Input is a mutable turn context exposing log(); no return value.
        Side Effects / State: Invokes step functions that mutate the context and
            records one trace entry per step.
        Dependencies: Depends on TurnStep.fn and TurnStep.skip_if semantics.
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: No turn can run.
        Testing Notes: Verify skip_if and always_run logic with simple steps.
        """
        for step in self._steps:
            if not step.always_run and step.skip_if and step.skip_if(context):
                context.log(step.name, "skipped", status="skipped")
                continue
            started = time.perf_counter()
            step.fn(context)
            elapsed_ms = (time.perf_counter() - started) * 1000
            context.log(step.name, f"{elapsed_ms:.1f}ms")
            logger.debug("step=%s status=success elapsed_ms=%.1f", step.name, elapsed_ms)


def trace_entry(step: str, detail: str, status: str) -> Dict[str, str]:
    return {"step": step, "detail": detail, "status": status}
