"""Sequential execution of approved tool confirmations"""
from typing import Dict, Any, Awaitable, Callable, List, Mapping, Optional, Union
from pydantic import BaseModel, Field
import asyncio
import inspect
import time
import structlog

from hitl_agent.domain.clock import Clock, utc_now
from hitl_agent.domain.hitl.state_machine import ExecutionCompleted, transition
from hitl_agent.domain.models.hitl_state import ConfirmationStatus, HITLState, ToolConfirmation, ToolExecutionEntry

logger = structlog.get_logger(__name__)


class ToolResult(BaseModel):
    """Value returned by a tool executor"""
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None


ToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[Any]]
ProgressCallback = Callable[[ToolExecutionEntry, int, int], Union[None, Awaitable[None]]]


def to_tool_result(outcome: Any) -> ToolResult:
    """Normalize an executor return value.

    A mapping with a `success` key is read as a ToolResult, any other value is a
    successful plain result.
    """
    if isinstance(outcome, ToolResult):
        return outcome
    if isinstance(outcome, Mapping) and "success" in outcome:
        return ToolResult.model_validate(dict(outcome))
    return ToolResult(success=True, result=outcome)


class ExecutionBatchResult(BaseModel):
    """Outcome of running a batch of approved confirmations"""
    results: List[ToolExecutionEntry] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: int = 0
    state: HITLState

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0


async def no_executor_configured(tool_name: str, args: Dict[str, Any]) -> ToolResult:
    """Fallback executor used when nothing can run the tool"""
    return ToolResult(success=False, error=f"No executor configured for {tool_name}")


class ToolExecutionCoordinator:
    """Runs approved confirmations one by one through an injected executor.

    Each call is timed and any exception it raises becomes a failed entry. After
    every entry the HITL state receives an EXECUTION_COMPLETED transition, so
    each confirmation is executed and recorded exactly once.
    Confirmations that are not in the approved state are logged and left out.
    """

    def __init__(
        self,
        continue_on_error: bool = True,
        timeout_seconds: Optional[float] = None,
        clock: Clock = utc_now
    ):
        self.continue_on_error = continue_on_error
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    async def execute_approved(
        self,
        confirmations: List[ToolConfirmation],
        executor: Optional[ToolExecutor],
        state: HITLState,
        progress_callback: Optional[ProgressCallback] = None
    ) -> ExecutionBatchResult:
        """Execute confirmations strictly in submission order"""

        executor = executor or no_executor_configured
        runnable = [c for c in confirmations if c.status == ConfirmationStatus.APPROVED]
        if len(runnable) != len(confirmations):
            logger.warning(
                "Skipping confirmations that are not approved",
                confirmation_ids=[c.id for c in confirmations if c.status != ConfirmationStatus.APPROVED]
            )
        confirmations = runnable
        results: List[ToolExecutionEntry] = []
        batch_start = time.monotonic()
        stopped = False
        total = len(confirmations)

        for index, confirmation in enumerate(confirmations):
            if stopped:
                entry = self._skipped_entry(confirmation)
            else:
                entry = await self._execute_one(confirmation, executor)
                if not entry.success and not self.continue_on_error:
                    stopped = True

            state = transition(state, ExecutionCompleted(entry=entry, at=entry.timestamp))
            results.append(entry)

            if progress_callback is not None:
                outcome = progress_callback(entry, index, total)
                if inspect.isawaitable(outcome):
                    await outcome

        success_count = sum(1 for r in results if r.success)
        batch = ExecutionBatchResult(
            results=results,
            success_count=success_count,
            failure_count=len(results) - success_count,
            total_duration_ms=int((time.monotonic() - batch_start) * 1000),
            state=state
        )
        logger.info(
            "Tool batch executed",
            total=total,
            succeeded=batch.success_count,
            failed=batch.failure_count,
            duration_ms=batch.total_duration_ms
        )
        return batch

    async def _execute_one(self, confirmation: ToolConfirmation, executor: ToolExecutor) -> ToolExecutionEntry:
        start = time.monotonic()
        try:
            outcome = executor(confirmation.tool_name, dict(confirmation.tool_args))
            if inspect.isawaitable(outcome):
                if self.timeout_seconds is not None:
                    outcome = await asyncio.wait_for(outcome, timeout=self.timeout_seconds)
                else:
                    outcome = await outcome
            result = to_tool_result(outcome)
        except asyncio.TimeoutError:
            result = ToolResult(success=False, error=f"Tool execution timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.warning("Tool execution failed", tool_name=confirmation.tool_name, error=str(e))
            result = ToolResult(success=False, error=str(e) or type(e).__name__)

        duration_ms = int((time.monotonic() - start) * 1000)
        return ToolExecutionEntry(
            confirmation_id=confirmation.id,
            tool_name=confirmation.tool_name,
            args=dict(confirmation.tool_args),
            success=result.success,
            result=result.result,
            error=result.error,
            duration_ms=duration_ms,
            timestamp=self.clock()
        )

    def _skipped_entry(self, confirmation: ToolConfirmation) -> ToolExecutionEntry:
        return ToolExecutionEntry(
            confirmation_id=confirmation.id,
            tool_name=confirmation.tool_name,
            args=dict(confirmation.tool_args),
            success=False,
            error="Skipped after an earlier tool failure",
            duration_ms=0,
            timestamp=self.clock()
        )


def format_execution_results(batch: ExecutionBatchResult) -> str:
    """Summarize a batch for the user"""

    if batch.all_succeeded:
        message = f"[ok] **All {batch.success_count} tool(s) executed successfully**\n\n"
    else:
        message = f"[!] **Execution completed with {batch.failure_count} error(s)**\n\n"
        message += f"[ok] Succeeded: {batch.success_count}\n"
        message += f"[x] Failed: {batch.failure_count}\n\n"

    for entry in batch.results:
        icon = "[ok]" if entry.success else "[x]"
        message += f"{icon} **{entry.tool_name}** ({entry.duration_ms}ms)\n"
        if not entry.success and entry.error:
            message += f"   Error: {entry.error}\n"

    message += f"\nTotal time: {batch.total_duration_ms}ms"
    return message
