"""Bounded worker pool for independent coordinator invocations.

Each task runs one governance action end to end. Tasks share nothing but
read-only inputs, so they run without locking; results are aggregated
after every task has finished, and a failure never cancels its siblings.
"""

from __future__ import annotations

from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .app_logging import structlog
from .constants import DEFAULT_MAX_RETRIES, DEFAULT_MAX_WORKERS
from .errors import CoordinatorError

logger = structlog.get_logger(__name__)


@dataclass
class TaskResult:
    """Outcome of one batch task.

    Attributes:
        identity: Task key (e.g. node ID).
        outcome: Return value of the task, if it succeeded.
        error: Exception the last attempt raised, if it failed.
        attempts: Number of attempts made.
    """

    identity: str
    outcome: Any = None
    error: Exception | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, CoordinatorError) and error.retryable


def _run_task(identity: str, task: Callable[[], Any], max_retries: int) -> TaskResult:
    attempts = 0
    while True:
        attempts += 1
        try:
            return TaskResult(identity=identity, outcome=task(), attempts=attempts)
        except Exception as e:
            if _is_retryable(e) and attempts <= max_retries:
                logger.warning("retrying task", identity=identity, attempt=attempts, error=str(e))
                continue
            logger.error("task failed", identity=identity, attempts=attempts, error=str(e))
            return TaskResult(identity=identity, error=e, attempts=attempts)


def run_batch(
    tasks: Mapping[str, Callable[[], Any]],
    max_workers: int = DEFAULT_MAX_WORKERS,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> list[TaskResult]:
    """Run tasks on a bounded pool and wait for all of them.

    Args:
        tasks: Task key to zero-argument callable.
        max_workers: Pool size upper bound.
        max_retries: Extra attempts for retryable coordinator errors.

    Returns:
        One TaskResult per task, in ``tasks`` order.
    """
    if not tasks:
        return []

    workers = max(1, min(max_workers, len(tasks)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            identity: executor.submit(_run_task, identity, task, max_retries)
            for identity, task in tasks.items()
        }
        wait(futures.values(), return_when=ALL_COMPLETED)

    results = [futures[identity].result() for identity in tasks]
    succeeded, failed = split_results(results)
    logger.info("batch finished", total=len(results), succeeded=len(succeeded), failed=len(failed))
    return results


def split_results(results: list[TaskResult]) -> tuple[list[TaskResult], list[TaskResult]]:
    """Split results into (succeeded, failed)."""
    succeeded = [result for result in results if result.ok]
    failed = [result for result in results if not result.ok]
    return succeeded, failed
