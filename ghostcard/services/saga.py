"""
Saga orchestration for multi-step charge settlement.

A charge touches three rows once it has been validated: a new Transaction,
the Card it was made on, and the customer's outstanding balance. Each of
these is a step with a forward action and an optional compensating action.
Steps run in order; if one raises, the steps that already completed are
compensated in reverse order.

State machine:

    PENDING ──▶ IN_PROGRESS ──▶ COMMITTED
                    │
                    ▼
              COMPENSATING ──▶ COMPENSATED
                    │
                    └────────▶ COMPENSATION_FAILED

COMPENSATION_FAILED means at least one compensating action raised; the
saga has left partial writes behind and needs manual repair. It is logged
at error level with the saga id.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

ForwardAction = Callable[[dict[str, Any]], Awaitable[Any]]
CompensatingAction = Callable[[dict[str, Any], Any], Awaitable[None]]


class SagaState(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMMITTED = "committed"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"


class SagaFailedError(Exception):
    """
    Raised by Saga.execute when a forward step fails.

    Attributes:
        saga_id: Id of the failed saga.
        failed_step: Name of the step whose forward action raised.
        state: COMPENSATED or COMPENSATION_FAILED.
        cause: The exception the step raised.
    """

    def __init__(self, saga_id: str, failed_step: str, state: SagaState, cause: BaseException):
        self.saga_id = saga_id
        self.failed_step = failed_step
        self.state = state
        self.cause = cause
        super().__init__(f"Saga {saga_id} failed at step {failed_step}: {cause}")


class SagaStep:
    """One forward action plus its (optional) compensating action."""

    def __init__(
        self,
        name: str,
        forward_action: ForwardAction,
        compensating_action: CompensatingAction | None = None,
    ):
        self.name = name
        self.forward_action = forward_action
        self.compensating_action = compensating_action
        self.status = StepStatus.PENDING
        self.result: Any = None
        self.error: str | None = None

    async def execute(self, context: dict[str, Any]) -> Any:
        logger.debug("saga_step_executing", step=self.name)
        try:
            self.result = await self.forward_action(context)
        except Exception as e:
            self.status = StepStatus.FAILED
            self.error = str(e)
            logger.warning("saga_step_failed", step=self.name, error=str(e))
            raise
        self.status = StepStatus.COMPLETED
        return self.result

    async def compensate(self, context: dict[str, Any]) -> None:
        """
        Undo a completed step.

        Raises whatever the compensating action raises; the saga decides
        what that means for its own state.
        """
        if self.status != StepStatus.COMPLETED:
            return
        if self.compensating_action is None:
            logger.warning("saga_step_no_compensation", step=self.name)
            return

        logger.info("saga_step_compensating", step=self.name)
        try:
            await self.compensating_action(context, self.result)
        except Exception as e:
            self.status = StepStatus.COMPENSATION_FAILED
            self.error = str(e)
            raise
        self.status = StepStatus.COMPENSATED


class Saga:
    """
    An ordered list of steps sharing one context dict.

    Each step's result is stored in the context under "<step name>_result"
    so later steps can use it.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None, saga_id: str | None = None):
        self.saga_id = saga_id or str(uuid.uuid4())
        self.name = name
        self.steps: list[SagaStep] = []
        self.state = SagaState.PENDING
        self.context: dict[str, Any] = context if context is not None else {}
        self.created_at = datetime.now(timezone.utc)
        self.completed_at: datetime | None = None

    def add_step(
        self,
        name: str,
        forward_action: ForwardAction,
        compensating_action: CompensatingAction | None = None,
    ) -> "Saga":
        """Append a step. Returns self for chaining."""
        self.steps.append(SagaStep(name, forward_action, compensating_action))
        return self

    async def execute(self) -> dict[str, Any]:
        """
        Run every step in order.

        Returns:
            The shared context once all steps have completed.

        Raises:
            SagaFailedError: If a step raised. Completed steps have been
                compensated (or compensation was attempted) by then.
        """
        logger.info("saga_started", saga_id=self.saga_id, name=self.name)
        self.state = SagaState.IN_PROGRESS
        completed: list[SagaStep] = []

        for step in self.steps:
            try:
                result = await step.execute(self.context)
            except Exception as e:
                logger.error(
                    "saga_failed",
                    saga_id=self.saga_id,
                    name=self.name,
                    step=step.name,
                    error=str(e),
                )
                await self._compensate(completed)
                raise SagaFailedError(self.saga_id, step.name, self.state, e) from e

            completed.append(step)
            self.context[f"{step.name}_result"] = result

        self.state = SagaState.COMMITTED
        self.completed_at = datetime.now(timezone.utc)
        logger.info(
            "saga_committed",
            saga_id=self.saga_id,
            name=self.name,
            steps=len(completed),
        )
        return self.context

    async def _compensate(self, completed: list[SagaStep]) -> None:
        self.state = SagaState.COMPENSATING
        failures = 0

        for step in reversed(completed):
            try:
                await step.compensate(self.context)
            except Exception as e:
                failures += 1
                logger.error(
                    "saga_compensation_failed",
                    saga_id=self.saga_id,
                    step=step.name,
                    error=str(e),
                )

        self.state = (
            SagaState.COMPENSATION_FAILED if failures else SagaState.COMPENSATED
        )
        self.completed_at = datetime.now(timezone.utc)
        logger.info(
            "saga_compensation_finished",
            saga_id=self.saga_id,
            state=self.state.value,
            steps_compensated=len(completed) - failures,
        )
