"""Step execution with status capture and fail-fast abort.

Each provisioning step is one gateway call. The executor records the outcome
on the run and raises on failure. Steps are never retried: a half-finished
security transition (unlock, erase, key injection, lock) has to end the run.
"""

from enum import Enum
from typing import Awaitable, Callable, Optional

from .errors import SecurityViolation, StepFailed
from .logger import get_logger
from .programmers import CommandResult
from .run_status import Run, Step, StepStatus

log = get_logger(__name__)


class Expectation(Enum):
    """What a passing gateway call looks like for a step."""
    SUCCESS = "success"
    BLOCKED = "blocked"  # The call must fail, e.g. token reads after lock


class StepExecutor:
    """Runs steps against one Run record."""

    def __init__(self, run: Run):
        self.run = run

    async def execute(
        self,
        step: Step,
        action: Callable[[], Awaitable[CommandResult]],
        expect: Expectation = Expectation.SUCCESS,
        verify: Optional[Callable[[CommandResult], bool]] = None,
    ) -> CommandResult:
        """Invoke the gateway for a step and record the outcome.

        Args:
            step: Step whose status is updated
            action: Zero-argument coroutine function performing the call
            expect: SUCCESS, or BLOCKED for inverted checks
            verify: Extra check on a successful result's output

        Returns:
            The gateway result when the step passed

        Raises:
            StepFailed: the call failed or verify rejected its output
            SecurityViolation: a BLOCKED call succeeded
        """
        log.info(f"{step.label}...")
        result = await action()

        if expect == Expectation.BLOCKED:
            if result.ok:
                log.error(f"{step.label}: ACCESSIBLE (FAILED/unexpected!!!)")
                if result.output:
                    # Transcript only: token contents stay out of syslog and the log file
                    print(result.output)
                self._abort(step, SecurityViolation)
            log.info(f"{step.label}: BLOCKED (expected)")
        elif not result.ok or (verify is not None and not verify(result)):
            self._abort(step, StepFailed)

        self.run.mark(step, StepStatus.OK)
        log.info(f"{step.label}: OK")
        return result

    def skip(self, step: Step, why: str) -> None:
        self.run.mark(step, StepStatus.SKIPPED)
        log.info(f"Skipping {step.label.lower()} ({why})")

    def _abort(self, step: Step, error_cls) -> None:
        error = error_cls(step, step.failure_reason)
        self.run.mark(step, StepStatus.ERROR)
        self.run.fail(error.reason, error.location)
        log.error(f"{error.reason}. Exiting.")
        raise error
