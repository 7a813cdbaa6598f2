from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception_type

from accessgate import config
from accessgate.actions.base import ActionContext, ActionHandler
from accessgate.actions.clock import SystemClock, VirtualClock
from accessgate.actions.graph import critical_path_ms, topological_order
from accessgate.actions.ledger import CompletionLedger, InMemoryCompletionLedger
from accessgate.actions.state import ActionRun, ActionState
from accessgate.actions.types import (
    Action,
    ActionOutcome,
    ApprovalTokens,
    ExecutionMode,
    ExecutionReport,
    OutcomeStatus,
    overall_status,
)
from accessgate.errors import ActionTimeoutError, TransientActionError
from accessgate.observability.internal_metrics import incr

if TYPE_CHECKING:
    from accessgate.rules.types import Rule


logger = logging.getLogger(__name__)

_OUTCOME_COUNTERS = {
    OutcomeStatus.SUCCESS: "actions_succeeded",
    OutcomeStatus.FAILED: "actions_failed",
    OutcomeStatus.SKIPPED: "actions_skipped",
    OutcomeStatus.PENDING: "actions_pending",
}


class _Invocation:
    """Per-call settings shared by every action of one execute() call."""

    def __init__(
        self,
        *,
        mode: ExecutionMode,
        subject_id: str,
        rule_id: str,
        rule_requires_approval: bool,
        rule_dry_run: bool,
        approvals: ApprovalTokens,
        cancel: threading.Event,
        clock,
    ):
        self.mode = mode
        self.subject_id = subject_id
        self.rule_id = rule_id
        self.rule_requires_approval = rule_requires_approval
        self.rule_dry_run = rule_dry_run
        self.approvals = approvals
        self.cancel = cancel
        self.clock = clock

    def is_dry_run(self, action: Action) -> bool:
        return self.mode == ExecutionMode.DRY_RUN or self.rule_dry_run or action.dry_run

    def approval_missing(self, action: Action) -> bool:
        has_action_token = self.approvals.has_action(action.id)
        if action.requires_approval and not has_action_token:
            return True
        if self.rule_requires_approval and not (self.approvals.has_rule() or has_action_token):
            return True
        return False


class ActionExecutor:
    """
    Runs a rule's actions in dependency order.

    Live mode dispatches to registered handlers, consults the completion
    ledger and runs independent branches on a bounded thread pool. Dry-run
    mode walks the same graph, approval and retry logic against a virtual
    clock without calling any handler's `execute`.
    """

    def __init__(
        self,
        handlers: Optional[Iterable[ActionHandler]] = None,
        *,
        ledger: Optional[CompletionLedger] = None,
        clock=None,
        max_workers: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
    ):
        self._handlers: Dict[str, ActionHandler] = {}
        for handler in handlers or ():
            self.register_handler(handler)
        self.ledger = ledger if ledger is not None else InMemoryCompletionLedger()
        self.clock = clock or SystemClock()
        self.max_workers = max(1, int(max_workers or config.EXECUTOR_WORKERS))
        self.base_delay_seconds = (
            config.RETRY_BASE_DELAY_SECONDS if base_delay_seconds is None else max(0.0, float(base_delay_seconds))
        )
        self._attempt_pool: Optional[ThreadPoolExecutor] = None
        self._attempt_pool_lock = threading.Lock()

    def shutdown(self, wait: bool = True) -> None:
        """Release the attempt threads. Attempts still running are not interrupted."""
        with self._attempt_pool_lock:
            pool, self._attempt_pool = self._attempt_pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    def _attempts(self) -> ThreadPoolExecutor:
        with self._attempt_pool_lock:
            if self._attempt_pool is None:
                self._attempt_pool = ThreadPoolExecutor(
                    max_workers=max(config.ATTEMPT_WORKERS, self.max_workers),
                    thread_name_prefix="accessgate-attempt",
                )
            return self._attempt_pool

    def register_handler(self, handler: ActionHandler) -> None:
        for action_type in handler.supported_types():
            self._handlers[action_type.value] = handler

    def execute_rule(
        self,
        rule: "Rule",
        *,
        subject_id: str,
        mode: ExecutionMode = ExecutionMode.LIVE,
        approvals: Optional[ApprovalTokens] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionReport:
        return self.execute(
            rule.actions,
            mode=mode,
            subject_id=subject_id,
            rule_id=rule.id,
            rule_requires_approval=rule.requires_approval,
            rule_dry_run=rule.dry_run,
            approvals=approvals,
            cancel=cancel,
        )

    def execute(
        self,
        actions: Sequence[Action],
        *,
        mode: ExecutionMode = ExecutionMode.LIVE,
        subject_id: str = "",
        rule_id: str = "",
        rule_requires_approval: bool = False,
        rule_dry_run: bool = False,
        approvals: Optional[ApprovalTokens] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionReport:
        # Raises CyclicDependencyError before anything runs.
        ordered = topological_order(list(actions))

        dry_run_all = mode == ExecutionMode.DRY_RUN or rule_dry_run
        invocation = _Invocation(
            mode=mode,
            subject_id=subject_id,
            rule_id=rule_id,
            rule_requires_approval=rule_requires_approval,
            rule_dry_run=rule_dry_run,
            approvals=approvals or ApprovalTokens(),
            cancel=cancel or threading.Event(),
            clock=self.clock,
        )

        started = invocation.clock.monotonic()
        if dry_run_all or self.max_workers == 1:
            outcomes = self._run_sequential(ordered, invocation)
        else:
            outcomes = self._run_concurrent(ordered, invocation)

        if dry_run_all:
            total_ms = critical_path_ms(ordered, {o.action_id: o.duration_ms for o in outcomes.values()})
        else:
            total_ms = int(round((invocation.clock.monotonic() - started) * 1000))

        ordered_outcomes = [outcomes[action.id] for action in ordered]
        for outcome in ordered_outcomes:
            incr(_OUTCOME_COUNTERS[outcome.status])

        return ExecutionReport(
            subject_id=subject_id,
            rule_id=rule_id,
            mode=ExecutionMode.DRY_RUN if dry_run_all else mode,
            outcomes=ordered_outcomes,
            total_duration_ms=total_ms,
            overall_status=overall_status(ordered_outcomes),
            cancelled=invocation.cancel.is_set(),
        )

    # -- scheduling -------------------------------------------------------

    def _run_sequential(self, ordered: List[Action], invocation: _Invocation) -> Dict[str, ActionOutcome]:
        outcomes: Dict[str, ActionOutcome] = {}
        for action in ordered:
            outcome = self._precheck(action, outcomes, invocation)
            if outcome is None:
                outcome = self._dispatch(action, invocation)
            outcomes[action.id] = outcome
        return outcomes

    def _run_concurrent(self, ordered: List[Action], invocation: _Invocation) -> Dict[str, ActionOutcome]:
        outcomes: Dict[str, ActionOutcome] = {}
        remaining = list(ordered)
        in_flight: Dict[Future, str] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="accessgate-action") as pool:
            while remaining or in_flight:
                ready = [a for a in remaining if all(dep in outcomes for dep in a.dependencies)]
                if ready:
                    for action in ready:
                        remaining.remove(action)
                        outcome = self._precheck(action, outcomes, invocation)
                        if outcome is not None:
                            outcomes[action.id] = outcome
                        else:
                            in_flight[pool.submit(self._dispatch, action, invocation)] = action.id
                    continue

                if not in_flight:
                    break
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    outcomes[in_flight.pop(future)] = future.result()
        return outcomes

    # -- per action -------------------------------------------------------

    def _precheck(
        self,
        action: Action,
        outcomes: Dict[str, ActionOutcome],
        invocation: _Invocation,
    ) -> Optional[ActionOutcome]:
        """Resolve actions that must not be dispatched; None means dispatch."""
        run = ActionRun(action.id)
        dry_run = invocation.is_dry_run(action)

        if invocation.cancel.is_set():
            run.transition(ActionState.SKIPPED, error="cancelled before dispatch")
            return self._outcome(action, run, 0, dry_run)

        for dep in sorted(action.dependencies):
            dep_outcome = outcomes[dep]
            if dep_outcome.status != OutcomeStatus.SUCCESS:
                run.transition(ActionState.SKIPPED, error=f"dependency `{dep}` {dep_outcome.status.value}")
                return self._outcome(action, run, 0, dry_run)

        # an action applied by an earlier invocation needs no fresh approval
        if not dry_run and self.ledger.is_completed(invocation.subject_id, invocation.rule_id, action.id):
            run.begin_attempt()
            run.replayed = True
            run.transition(ActionState.SUCCEEDED)
            return self._outcome(action, run, 0, dry_run)

        if invocation.approval_missing(action):
            run.transition(ActionState.AWAITING_APPROVAL, error="approval required")
            return self._outcome(action, run, 0, dry_run)

        if dry_run:
            return None

        if self._handlers.get(action.type.value) is None:
            run.begin_attempt()
            run.transition(ActionState.FAILED, error=f"no handler registered for {action.type.value}")
            logger.warning("No handler for action %s (%s)", action.id, action.type.value)
            return self._outcome(action, run, 0, dry_run)

        return None

    def _dispatch(self, action: Action, invocation: _Invocation) -> ActionOutcome:
        run = ActionRun(action.id)
        dry_run = invocation.is_dry_run(action)
        # rehearsals advance their own virtual time and never sleep
        clock = VirtualClock() if dry_run else invocation.clock
        policy = action.retry_policy
        handler = self._handlers.get(action.type.value)
        started = clock.monotonic()

        def remaining_budget() -> float:
            return policy.timeout_seconds - (clock.monotonic() - started)

        def stop(retry_state: RetryCallState) -> bool:
            if retry_state.attempt_number > policy.max_retries:
                return True
            return remaining_budget() <= 0

        def backoff(retry_state: RetryCallState) -> float:
            delay = self.base_delay_seconds * policy.backoff_multiplier ** (retry_state.attempt_number - 1)
            return max(0.0, min(delay, remaining_budget()))

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            run.transition(ActionState.RETRYING, error=str(exc))
            incr("action_retries")
            logger.warning(
                "Retrying action %s for subject %s after attempt %s: %s",
                action.id,
                invocation.subject_id,
                retry_state.attempt_number,
                exc,
            )

        retrying = Retrying(
            stop=stop,
            wait=backoff,
            retry=retry_if_exception_type(TransientActionError),
            sleep=clock.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

        try:
            for attempt in retrying:
                with attempt:
                    run.begin_attempt()
                    budget = remaining_budget()
                    context = ActionContext(
                        subject_id=invocation.subject_id,
                        rule_id=invocation.rule_id,
                        attempt=run.attempts,
                        dry_run=dry_run,
                        timeout_seconds=max(0.0, budget),
                    )
                    if dry_run:
                        self._rehearse(action, handler, context, clock, budget)
                    else:
                        self._call_with_timeout(
                            lambda: handler.execute(action, context),
                            budget,
                            on_late_success=lambda: self._record_late_completion(action, invocation),
                        )
        except TransientActionError as exc:
            run.transition(ActionState.FAILED, error=f"retries exhausted after {run.attempts} attempt(s): {exc}")
        except ActionTimeoutError as exc:
            run.transition(ActionState.FAILED, error=str(exc))
        except Exception as exc:
            run.transition(ActionState.FAILED, error=f"{type(exc).__name__}: {exc}")
        else:
            run.transition(ActionState.SUCCEEDED)
            if not dry_run:
                self.ledger.mark_completed(invocation.subject_id, invocation.rule_id, action.id)

        if run.state == ActionState.FAILED:
            logger.warning("Action %s failed for subject %s: %s", action.id, invocation.subject_id, run.error)

        duration_ms = int(round((clock.monotonic() - started) * 1000))
        return self._outcome(action, run, duration_ms, dry_run)

    def _rehearse(
        self,
        action: Action,
        handler: Optional[ActionHandler],
        context: ActionContext,
        clock,
        budget: float,
    ) -> None:
        """Advance virtual time by one attempt, timing out exactly as a live attempt would."""
        if budget <= 0:
            raise ActionTimeoutError("timeout budget exhausted before attempt")
        estimate = config.DRY_RUN_DURATION_MS.get(action.type.value, config.DRY_RUN_DEFAULT_DURATION_MS) / 1000.0
        try:
            simulated = handler.simulate(action, context) if handler is not None else None
        except TransientActionError:
            self._advance(clock, estimate, budget)
            raise
        self._advance(clock, estimate if simulated is None else max(0.0, float(simulated)), budget)

    @staticmethod
    def _advance(clock, seconds: float, budget: float) -> None:
        if seconds > budget:
            clock.sleep(budget)
            raise ActionTimeoutError(f"attempt exceeded remaining timeout of {budget:.3f}s")
        clock.sleep(seconds)

    def _call_with_timeout(
        self,
        fn: Callable[[], None],
        timeout: float,
        *,
        on_late_success: Optional[Callable[[], None]] = None,
    ) -> None:
        if timeout <= 0:
            raise ActionTimeoutError("timeout budget exhausted before attempt")
        future = self._attempts().submit(fn)
        try:
            future.result(timeout=timeout)
        except FuturesTimeoutError:
            if future.done():
                # finished at the deadline, or the handler itself raised TimeoutError
                future.result()
                return
            if not future.cancel() and on_late_success is not None:
                future.add_done_callback(lambda done: self._settle_late(done, on_late_success))
            raise ActionTimeoutError(f"attempt exceeded remaining timeout of {timeout:.3f}s") from None

    @staticmethod
    def _settle_late(future: Future, on_late_success: Callable[[], None]) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        on_late_success()

    def _record_late_completion(self, action: Action, invocation: _Invocation) -> None:
        """A timed-out attempt that still finished is recorded so it is never applied twice."""
        self.ledger.mark_completed(
            invocation.subject_id,
            invocation.rule_id,
            action.id,
            detail="completed after timeout",
        )
        incr("actions_completed_late")
        logger.warning(
            "Action %s for subject %s completed after its timeout; recorded as completed",
            action.id,
            invocation.subject_id,
        )

    @staticmethod
    def _outcome(action: Action, run: ActionRun, duration_ms: int, dry_run: bool) -> ActionOutcome:
        return ActionOutcome(
            action_id=action.id,
            action_type=action.type,
            target=action.target,
            status=run.status,
            state=run.state.value,
            attempts=run.attempts,
            duration_ms=duration_ms,
            error=run.error if run.state != ActionState.SUCCEEDED else None,
            replayed=run.replayed,
            dry_run=dry_run,
            history=list(run.history),
        )
