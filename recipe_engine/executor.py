"""Step execution: conditions, validation, dispatch, retries and exports."""

import asyncio
import logging
from typing import Any

from . import events
from .config import EngineConfig
from .context import StepContext
from .errors import StepTimeoutError
from .errors import ToolExecutionError
from .expression_evaluator import ExpressionError
from .expression_evaluator import evaluate_expression
from .models import Step
from .results import StepError
from .results import StepResult
from .results import StepStatus
from .scheduler import ExecutionPlan
from .scheduler import plan_execution
from .tools.base import Tool
from .tools.registry import ToolRegistry
from .variables import PLACEHOLDER_PATTERN
from .variables import resolve

logger = logging.getLogger(__name__)

BLOCKED_BY_FAILURE = "blocked by failure"
CANCELLED = "cancelled"


class StepExecutor:
    """Runs steps and batches of steps against a shared StepContext."""

    def __init__(
        self,
        registry: ToolRegistry,
        config: EngineConfig | None = None,
        display: Any = None,
        listener: events.EventListener | None = None,
    ):
        """
        Initialize executor.

        Args:
            registry: Tool registry used to resolve each step's tool
            config: Engine configuration (retries, timeouts, concurrency)
            display: Optional object with show_message(message, level, source)
            listener: Optional callable receiving ExecutionEvent objects
        """
        self.registry = registry
        self.config = config or EngineConfig()
        self.display = display
        self.listener = listener

    def _show_progress(self, message: str, level: str = "info") -> None:
        """
        Show progress message to user via display system.

        Args:
            message: Progress message to display
            level: Message level (info, warning, error)
        """
        if self.display is not None:
            self.display.show_message(message=message, level=level, source="recipe")

    async def emit(self, context: StepContext, kind: str, step_name: str | None = None, **data: Any) -> None:
        """Send a lifecycle event for ``context``'s run to the listener."""
        if self.listener is None:
            return
        event = events.ExecutionEvent(
            kind=kind,
            execution_id=context.recipe_id,
            recipe_name=context.recipe_name,
            step_name=step_name,
            depth=context.depth,
            data=data,
        )
        await events.emit_event(self.listener, event)

    async def _step_finished(self, context: StepContext, result: StepResult) -> None:
        context.metrics.step_finished(result)
        progress = context.metrics.metrics.progress
        if result.status == StepStatus.SKIPPED:
            await self.emit(
                context, events.STEP_SKIPPED, result.step_name, reason=result.skip_reason, progress=progress
            )
        elif result.status == StepStatus.FAILED:
            await self.emit(
                context,
                events.STEP_FAILED,
                result.step_name,
                code=result.error.code if result.error else None,
                message=result.error.message if result.error else None,
                retries=result.retry_count,
                progress=progress,
            )
        else:
            await self.emit(
                context,
                events.STEP_COMPLETED,
                result.step_name,
                duration=result.duration,
                retries=result.retry_count,
                downgraded=result.downgraded,
                progress=progress,
            )

    async def execute_step(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        """
        Execute one step end to end.

        Never raises for step-level failures; the returned StepResult carries
        the outcome. Task cancellation propagates.

        Args:
            step: Step to execute
            context: Shared run context
            dry_run: Report effects without performing them

        Returns:
            Terminal StepResult (completed, failed or skipped)
        """
        await self.emit(context, events.STEP_STARTED, step.name, tool=step.tool)
        context.metrics.step_started()
        try:
            result = await self._execute_step(step, context, dry_run)
        finally:
            context.metrics.step_stopped()
        await self._step_finished(context, result)
        return result

    async def _execute_step(self, step: Step, context: StepContext, dry_run: bool) -> StepResult:
        dry_run = dry_run or context.dry_run
        result = StepResult(step_name=step.name, tool_type=step.tool)
        result.dependencies_satisfied = all(
            context.step_results.get(dep) is not None and context.step_results[dep].status == StepStatus.COMPLETED
            for dep in step.depends_on
        )
        context.record_result(result)

        try:
            skip_reason = self._skip_reason(step, context)
        except ExpressionError as e:
            result.transition(StepStatus.RUNNING)
            return self._finish_failure(result, step, StepError("CONDITION_ERROR", f"Invalid condition: {e}", e))

        if skip_reason:
            result.skip_reason = skip_reason
            result.transition(StepStatus.SKIPPED)
            logger.debug("Skipping step '%s': %s", step.name, skip_reason)
            return result

        result.transition(StepStatus.RUNNING)
        logger.debug("Running step '%s' (%s)%s", step.name, step.tool, " [dry run]" if dry_run else "")

        if not context.trusted and not await self._approved(step, context):
            error = StepError("UNTRUSTED_STEP_REJECTED", f"Step '{step.name}' from an untrusted source was rejected")
            return self._finish_failure(result, step, error, allow_continue=False)

        try:
            tool = await self.registry.resolve(step.tool)
        except ToolExecutionError as e:
            return self._finish_failure(result, step, StepError(e.code, e.message, e), allow_continue=False)

        try:
            validation = tool.validate(step, context)
        except Exception as e:
            logger.error("Validation of step '%s' raised", step.name, exc_info=True)
            error = StepError(tool.validation_code, f"Step '{step.name}' could not be validated: {e}", e)
            return self._finish_failure(result, step, error, allow_continue=False)
        result.warnings.extend(validation.warnings)
        if not validation.is_valid:
            error = StepError(
                tool.validation_code,
                f"Step '{step.name}' is invalid: {'; '.join(validation.errors)}",
            )
            return self._finish_failure(result, step, error, allow_continue=False)

        return await self._execute_with_retry(tool, step, context, result, dry_run)

    async def _execute_with_retry(
        self,
        tool: Tool,
        step: Step,
        context: StepContext,
        result: StepResult,
        dry_run: bool,
    ) -> StepResult:
        max_retries = step.retries if step.retries is not None else self.config.default_retries
        timeout = step.timeout or self.config.default_timeout
        error: StepError | None = None

        for attempt in range(max_retries + 1):
            if attempt:
                delay = self.config.retry_delay(attempt)
                logger.info(
                    "Retrying step '%s' (attempt %d/%d) in %.2fs", step.name, attempt + 1, max_retries + 1, delay
                )
                result.retry_count = attempt
                context.metrics.retried()
                await self.emit(
                    context,
                    events.STEP_RETRY,
                    step.name,
                    attempt=attempt + 1,
                    delay=delay,
                    error=error.message if error else None,
                )
                await asyncio.sleep(delay)

            try:
                outcome = await self._run_tool(tool, step, context, dry_run, timeout)
            except ToolExecutionError as e:
                error = StepError(e.code, e.message, e.cause or e)
                logger.debug("Step '%s' attempt %d failed: %s", step.name, attempt + 1, e.message)
                continue
            except Exception as e:
                logger.error("Unexpected error in step '%s'", step.name, exc_info=True)
                error = StepError("STEP_EXECUTION_ERROR", f"{type(e).__name__}: {e}", e)
                continue

            # Exports are buffered until the attempt has fully succeeded
            exports = {**outcome.exported_variables, **self._evaluate_exports(step, outcome, context, result)}
            result.output = outcome.output
            result.tool_result = outcome.tool_result
            result.files_created = list(outcome.files_created)
            result.files_modified = list(outcome.files_modified)
            result.warnings.extend(outcome.warnings)
            result.exported_variables = exports
            context.merge_exports(step.name, exports)
            result.transition(StepStatus.COMPLETED)
            logger.debug("Step '%s' completed in %.0fms", step.name, result.duration)
            return result

        assert error is not None
        return self._finish_failure(result, step, error)

    async def _run_tool(
        self,
        tool: Tool,
        step: Step,
        context: StepContext,
        dry_run: bool,
        timeout: float | None,
    ) -> StepResult:
        if timeout is None:
            return await tool.execute(step, context, dry_run=dry_run)
        try:
            return await asyncio.wait_for(tool.execute(step, context, dry_run=dry_run), timeout=timeout)
        except asyncio.TimeoutError:
            raise StepTimeoutError(step.name, timeout) from None

    def _skip_reason(self, step: Step, context: StepContext) -> str | None:
        if step.when is not None and not context.evaluate_condition(step.when):
            return f"condition not met: {step.when}"
        if step.skip_if is not None and context.evaluate_condition(step.skip_if):
            return f"skip_if matched: {step.skip_if}"
        return None

    async def _approved(self, step: Step, context: StepContext) -> bool:
        gate = context.collaborators.trust_gate
        if gate is None:
            return False
        source = str(context.recipe_source) if context.recipe_source else None
        try:
            return bool(await gate.approve(step, source))
        except Exception:
            logger.error("Trust gate raised for step '%s'; treating as rejected", step.name, exc_info=True)
            return False

    def _evaluate_exports(
        self,
        step: Step,
        outcome: StepResult,
        context: StepContext,
        result: StepResult,
    ) -> dict[str, Any]:
        """Evaluate declared exports against the step's own result.

        An export that cannot be evaluated becomes None and records a warning.
        """
        if not step.exports:
            return {}

        scope = context.scope(
            {
                "result": outcome,
                "output": outcome.output,
                "toolResult": outcome.tool_result,
                "status": StepStatus.COMPLETED.value,
                "step": {"name": step.name, "tool": step.tool},
            }
        )
        exports = {}
        for name, expression in step.exports.items():
            try:
                if PLACEHOLDER_PATTERN.search(expression):
                    value = resolve(expression, scope)
                else:
                    value = evaluate_expression(expression, scope)
            except ExpressionError as e:
                result.warnings.append(f"Export '{name}' could not be evaluated: {e}")
                value = None
            exports[name] = value
        return exports

    def _finish_failure(
        self,
        result: StepResult,
        step: Step,
        error: StepError,
        allow_continue: bool = True,
    ) -> StepResult:
        """Record a terminal failure, downgrading it when the step allows."""
        result.error = error
        downgrade = step.optional or (allow_continue and (step.continue_on_error or self.config.continue_on_error))
        if downgrade:
            warning = f"Step '{step.name}' failed but execution continues: {error.message}"
            result.warnings.append(warning)
            logger.warning(warning)
            self._show_progress(f"⚠ {warning}", level="warning")
            result.transition(StepStatus.COMPLETED)
        else:
            logger.info("Step '%s' failed [%s]: %s", step.name, error.code, error.message)
            self._show_progress(f"✗ Step '{step.name}' failed: {error.message}", level="error")
            result.transition(StepStatus.FAILED)
        return result

    def skip_step(self, step: Step, context: StepContext, reason: str) -> StepResult:
        """Finalize a step that will never start."""
        result = StepResult(step_name=step.name, tool_type=step.tool, dependencies_satisfied=False)
        result.skip_reason = reason
        result.transition(StepStatus.SKIPPED)
        context.record_result(result)
        return result

    async def execute_batch(
        self,
        steps: list[Step],
        context: StepContext,
        dry_run: bool = False,
        limit: int | None = None,
    ) -> list[StepResult]:
        """Run one batch concurrently and wait for every step in it."""
        semaphore = asyncio.Semaphore(max(1, limit or self.config.max_concurrency))

        async def run(step: Step) -> StepResult:
            async with semaphore:
                return await self.execute_step(step, context, dry_run)

        return list(await asyncio.gather(*(run(step) for step in steps)))

    async def run_plan(
        self,
        plan: ExecutionPlan,
        context: StepContext,
        dry_run: bool = False,
        sequential: bool = False,
        limit: int | None = None,
    ) -> list[StepResult]:
        """
        Run a plan batch by batch.

        A hard failure lets the current batch finish, then every later step is
        skipped as blocked. A set cancel event does the same with reason
        "cancelled".

        Returns:
            Results in the plan's declaration order
        """
        batches = [[name] for batch in plan.batches for name in batch] if sequential else plan.batches
        results: dict[str, StepResult] = {}
        blocked: str | None = None

        for index, batch in enumerate(batches):
            if blocked is None and context.cancelled:
                blocked = CANCELLED
                logger.info("Cancellation requested; %d batch(es) will not start", len(batches) - index)
            if blocked is not None:
                for name in batch:
                    results[name] = self.skip_step(plan.step(name), context, blocked)
                    await self._step_finished(context, results[name])
                continue

            if not sequential:
                logger.info("Batch %d/%d: %s", index + 1, len(batches), ", ".join(batch))
            await self.emit(context, events.BATCH_STARTED, index=index, steps=list(batch))
            batch_results = await self.execute_batch([plan.step(name) for name in batch], context, dry_run, limit)
            for r in batch_results:
                results[r.step_name] = r
            await self.emit(
                context,
                events.BATCH_COMPLETED,
                index=index,
                failed=[r.step_name for r in batch_results if r.status == StepStatus.FAILED],
            )
            if any(r.status == StepStatus.FAILED for r in batch_results):
                blocked = BLOCKED_BY_FAILURE

        return [results[step.name] for step in plan.steps]

    async def execute_steps(
        self,
        steps: list[Step],
        context: StepContext,
        dry_run: bool = False,
        sequential: bool = False,
        limit: int | None = None,
    ) -> list[StepResult]:
        """Plan and run a nested step list (used by the meta-tools).

        Only outer steps that have finished count as satisfied dependencies;
        one still running in the current batch does not.
        """
        finished = [name for name, result in context.step_results.items() if result.status.is_terminal]
        plan = plan_execution(steps, satisfied=finished)
        return await self.run_plan(plan, context, dry_run=dry_run, sequential=sequential, limit=limit)
