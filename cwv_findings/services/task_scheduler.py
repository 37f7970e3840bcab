import time
import logging
from dataclasses import dataclass, field, replace
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from cwv_findings.core.config import SchedulerConfig
from cwv_findings.core.errors import ANALYSIS_FAILED, classify_exception, create_error
from cwv_findings.core.result import Result, TaskError

logger = logging.getLogger(__name__)


@dataclass
class AnalysisTask:
    """Opaque unit of analysis work; `run` returns raw findings, or raises or returns an error."""
    task_id: str
    run: Callable[[], Any]
    description: str = ""
    gate_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskOutcome:
    task: AnalysisTask
    result: Result


class TaskScheduler:
    """
    Runs analysis tasks in fixed-size batches with retry/backoff.

    Tasks inside a batch run concurrently; the next batch starts only after
    every task of the current one has settled, followed by the configured
    inter-batch delay. Each task's failure stays with that task: `run` never
    raises and returns one Result per task, in input order.
    """

    def __init__(self, config: Optional[SchedulerConfig] = None, sleep: Callable[[float], None] = time.sleep):
        self.config = config or SchedulerConfig()
        self.config.validate()
        self._sleep = sleep

    def run(self, tasks: List[AnalysisTask]) -> List[TaskOutcome]:
        if not tasks:
            return []
        batch_size = self.config.batch_size
        batches = [tasks[i:i + batch_size] for i in range(0, len(tasks), batch_size)]
        outcomes: List[TaskOutcome] = []

        for index, batch in enumerate(batches, start=1):
            logger.info(
                "Running batch %d/%d", index, len(batches),
                extra={"tasks": [t.task_id for t in batch]},
            )
            outcomes.extend(self._run_batch(batch))
            if index < len(batches) and self.config.batch_delay_seconds > 0:
                logger.debug("Waiting %.1fs before next batch", self.config.batch_delay_seconds)
                self._sleep(self.config.batch_delay_seconds)

        failed = [o.task.task_id for o in outcomes if o.result.is_err()]
        logger.info(
            "Scheduler finished", extra={"total": len(outcomes), "failed": len(failed), "failed_tasks": failed}
        )
        return outcomes

    def _run_batch(self, batch: List[AnalysisTask]) -> List[TaskOutcome]:
        results: List[Optional[Result]] = [None] * len(batch)
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            future_to_index = {executor.submit(self.run_task, task): i for i, task in enumerate(batch)}
            for future in as_completed(future_to_index):
                i = future_to_index[future]
                try:
                    results[i] = future.result()
                except Exception as e:
                    # run_task already converts task errors; this only guards the executor itself
                    logger.exception("Task %s crashed outside its retry loop", batch[i].task_id)
                    results[i] = Result.err(classify_exception(e), attempts=0)
        return [TaskOutcome(task=task, result=result) for task, result in zip(batch, results)]

    def run_task(self, task: AnalysisTask) -> Result:
        """Call the task with bounded retries; never raises.

        A task may raise, or return an error as a failed `Result`, a `TaskError`
        or an exception instance. All of these are classified the same way.
        """
        max_attempts = self.config.max_attempts
        started = time.monotonic()
        error = create_error(ANALYSIS_FAILED, f"Task {task.task_id} did not run")

        for attempt in range(max_attempts):
            details = {"task_id": task.task_id, "attempt": attempt + 1}
            try:
                value = task.run()
            except Exception as e:
                error = classify_exception(e, details=details)
            else:
                returned = _returned_error(value, details)
                if returned is None:
                    if isinstance(value, Result):
                        value = value.value
                    elapsed = time.monotonic() - started
                    logger.info("Task %s complete in %.2fs", task.task_id, elapsed)
                    return Result.ok(value, attempts=attempt + 1, duration_seconds=elapsed)
                error = returned

            if not error.retryable:
                logger.warning("Task %s failed terminally: %s", task.task_id, error.message,
                               extra={"code": error.code})
                return Result.err(error, attempts=attempt + 1,
                                  duration_seconds=time.monotonic() - started)
            if attempt == max_attempts - 1:
                break
            delay = self.config.base_retry_delay_seconds * (2 ** attempt)
            logger.warning(
                "Task %s attempt %d/%d failed (%s), retrying in %.1fs",
                task.task_id, attempt + 1, max_attempts, error.code, delay,
            )
            self._sleep(delay)

        logger.warning("Task %s failed after %d attempts: %s", task.task_id, max_attempts, error.message,
                       extra={"code": error.code})
        return Result.err(error, attempts=max_attempts, duration_seconds=time.monotonic() - started)


def _returned_error(value: Any, details: Dict[str, Any]) -> Optional[TaskError]:
    """The error carried by a task's return value, or None when it returned data."""
    if isinstance(value, Result):
        if value.is_ok():
            return None
        value = value.error or create_error(ANALYSIS_FAILED, "Task returned a failed result without an error")
    if isinstance(value, TaskError):
        return replace(value, details={**value.details, **details})
    if isinstance(value, BaseException):
        return classify_exception(value, details=details)
    return None
