"""
Execution Loop

The per-session state machine: idle -> running -> {completed, failed, stopped}.

Each iteration:
1. Stop flag set -> stopped.
2. Iteration budget used up -> completed (budget exhaustion is an expected
   outcome, not a fault).
3. Ask the planner for the next action.
   - complete -> completed, with a recap from the completion service.
   - invoke -> invoke through the registry, record the step.
   - planner failure (including naming an unregistered capability) ->
     record a failed step and continue; more consecutive failures than
     the threshold end the session as failed.
4. After a successful invocation, ask whether the goal is satisfied; if so,
   complete early.

Cancellation is cooperative: the flag is read once per iteration boundary,
so an in-flight planner call or invocation always finishes first.
"""

import asyncio

import structlog

from taskpilot.core.domain.capabilities import CapabilityRegistry, NotFound
from taskpilot.core.domain.errors import (
    CapabilityNotFound,
    ConsecutivePlannerFailure,
    InvalidParameters,
    IterationBudgetExhausted,
    PlannerNamedUnknownCapability,
    error_details,
)
from taskpilot.core.domain.events import Action, ActionKind
from taskpilot.core.domain.models import (
    ExecutionResult,
    FinalSummary,
    LoopSettings,
    SessionStatus,
    TerminationReason,
)
from taskpilot.core.domain.session import Session, SessionSnapshot
from taskpilot.core.interfaces.planner import PlannerProtocol


def _failure_from(error: Exception) -> ExecutionResult:
    details = error_details(error)
    message = details.pop("error")
    return ExecutionResult.failure(message, **details)


class ExecutionLoop:
    """
    Drives one session from running to a terminal status.

    The loop touches only its own Session; it never holds registry-wide
    locks while waiting on the planner or a capability.
    """

    def __init__(self, planner: PlannerProtocol, registry: CapabilityRegistry):
        self.planner = planner
        self.registry = registry
        self.logger = structlog.get_logger().bind(component="execution_loop")

    async def run(self, session: Session) -> SessionSnapshot:
        """
        Run ``session`` until it reaches a terminal status.

        Returns:
            Snapshot of the terminal session. Partial history is always kept.

        Raises:
            ValueError: If the session is already terminal
            asyncio.CancelledError: Re-raised after marking the session stopped
        """
        if session.is_terminal:
            raise ValueError(f"Session {session.id} is already {session.status.value}")

        settings = session.settings
        log = self.logger.bind(session_id=session.id)
        log.info(
            "loop_started",
            goal=session.goal[:100],
            max_iterations=settings.max_iterations,
            capabilities=len(self.registry),
        )

        try:
            try:
                await self._iterate(session, settings, log)
            except IterationBudgetExhausted as e:
                log.info("iteration_budget_exhausted", iterations=session.iteration_count)
                await self._complete(session, TerminationReason.ITERATION_BUDGET_EXHAUSTED, str(e))
            except ConsecutivePlannerFailure as e:
                log.error("consecutive_planner_failure", failures=e.failures, last_error=e.last_error)
                session.finish(
                    SessionStatus.FAILED,
                    FinalSummary(
                        reason=TerminationReason.CONSECUTIVE_PLANNER_FAILURE,
                        message=f"{e} (after {session.iteration_count} iterations)",
                    ),
                )
        except asyncio.CancelledError:
            if not session.is_terminal:
                session.finish(
                    SessionStatus.STOPPED,
                    FinalSummary(
                        reason=TerminationReason.CANCELLED,
                        message=f"Task cancelled after {session.iteration_count} iterations",
                    ),
                )
            log.warning("loop_cancelled", iterations=session.iteration_count)
            raise
        except Exception as e:
            log.error(
                "loop_internal_error",
                error=str(e),
                error_type=type(e).__name__,
                iterations=session.iteration_count,
            )
            if not session.is_terminal:
                session.finish(
                    SessionStatus.FAILED,
                    FinalSummary(
                        reason=TerminationReason.INTERNAL_ERROR,
                        message=f"Unexpected {type(e).__name__}: {e}",
                    ),
                )

        log.info(
            "loop_finished",
            status=session.status.value,
            reason=session.final_summary.reason.value if session.final_summary else None,
            iterations=session.iteration_count,
        )
        return session.snapshot()

    async def _iterate(self, session: Session, settings: LoopSettings, log) -> None:
        consecutive_failures = 0

        while True:
            if session.stop_requested:
                log.info("stop_observed", iterations=session.iteration_count)
                session.finish(
                    SessionStatus.STOPPED,
                    FinalSummary(
                        reason=TerminationReason.CANCELLED,
                        message=f"Stopped on request after {session.iteration_count} iterations",
                    ),
                )
                return

            if session.iteration_count >= settings.max_iterations:
                raise IterationBudgetExhausted(settings.max_iterations)

            log.info("loop_step", iteration=session.iteration_count + 1, max_iterations=settings.max_iterations)

            action = None
            try:
                action = await self.planner.next_action(
                    session.goal,
                    session.context,
                    session.memory.recent_steps(settings.recent_window),
                    self.registry.list(),
                    settings,
                )
                if action.kind == ActionKind.INVOKE and isinstance(
                    self.registry.lookup(action.capability), NotFound
                ):
                    raise PlannerNamedUnknownCapability(action.capability)
            except Exception as e:
                # Planner hiccups of any kind are retryable within the budget
                consecutive_failures += 1
                session.record_step(action, _failure_from(e))
                log.warning(
                    "planner_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    consecutive_failures=consecutive_failures,
                )
                if consecutive_failures > settings.max_consecutive_planner_failures:
                    raise ConsecutivePlannerFailure(consecutive_failures, str(e)) from e
                continue

            consecutive_failures = 0

            if action.kind == ActionKind.COMPLETE:
                await self._complete(
                    session,
                    TerminationReason.GOAL_COMPLETE,
                    action.reasoning or "Planner declared the goal complete",
                )
                return

            result = await self._invoke(action, settings)
            session.record_step(action, result)
            if not result.success:
                log.warning("step_failed", capability=action.capability, error=result.error)
                continue

            if await self.planner.is_goal_satisfied(session.goal, session.step_history, settings):
                await self._complete(
                    session,
                    TerminationReason.GOAL_SATISFIED,
                    f"Goal judged satisfied after {session.iteration_count} iterations",
                )
                return

    async def _invoke(self, action: Action, settings: LoopSettings) -> ExecutionResult:
        try:
            return await self.registry.invoke(
                action.capability,
                action.params,
                timeout=settings.invocation_timeout,
            )
        except (InvalidParameters, CapabilityNotFound) as e:
            return _failure_from(e)

    async def _complete(self, session: Session, reason: TerminationReason, message: str) -> None:
        recap = None
        try:
            recap = await self.planner.summarize(
                session.goal, session.step_history, session.settings, outcome=reason.value
            )
        except Exception as e:
            self.logger.warning("summary_failed", session_id=session.id, error=str(e))

        session.finish(
            SessionStatus.COMPLETED,
            FinalSummary(reason=reason, message=message, recap=recap),
        )
