from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Deque, Iterable

from .run_log import Logger, NullLogger


@dataclass(frozen=True)
class BatchTask:
    name: str
    fn: Callable[[], Any]


@dataclass(frozen=True)
class BatchFailure:
    task_name: str
    error: BaseException

    @property
    def error_type(self) -> str:
        return type(self.error).__name__

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class BatchResult:
    total: int
    success: int
    fail: int
    errors: tuple[BatchFailure, ...] = ()
    outcomes: tuple[tuple[str, Any], ...] = ()


@dataclass
class _Accumulator:
    lock: Lock = field(default_factory=Lock)
    errors: list[BatchFailure] = field(default_factory=list)
    outcomes: list[tuple[str, Any]] = field(default_factory=list)

    def succeeded(self, name: str, value: Any) -> None:
        with self.lock:
            self.outcomes.append((name, value))

    def failed(self, name: str, error: BaseException) -> None:
        with self.lock:
            self.errors.append(BatchFailure(task_name=name, error=error))


def _next_task(queue: Deque[BatchTask], lock: Lock) -> BatchTask | None:
    with lock:
        return queue.popleft() if queue else None


def run_batch(
    tasks: Iterable[BatchTask],
    concurrency: int,
    *,
    logger: Logger | None = None,
) -> BatchResult:
    """
    Run independent tasks on at most `concurrency` worker threads.

    Workers pop from one shared queue, so every task runs exactly once. A task
    that raises is recorded and does not stop its worker or any other task.
    Returns after every worker has drained the queue.
    """
    log = logger or NullLogger()
    queue: Deque[BatchTask] = deque(tasks)
    total = len(queue)
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    queue_lock = Lock()
    acc = _Accumulator()

    def _worker(worker_id: int) -> None:
        while True:
            task = _next_task(queue, queue_lock)
            if task is None:
                return
            log.info("batch_task_started", task=task.name, worker=worker_id)
            try:
                value = task.fn()
            except Exception as exc:
                acc.failed(task.name, exc)
                log.exception("batch_task_failed", exc=exc, task=task.name, worker=worker_id)
            else:
                acc.succeeded(task.name, value)
                log.info("batch_task_completed", task=task.name, worker=worker_id)

    workers = max(1, min(int(concurrency), total))
    log.info("batch_started", total=total, concurrency=int(concurrency), workers=workers)

    if total:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as pool:
            futures = [pool.submit(_worker, i) for i in range(workers)]
            for future in futures:
                future.result()

    result = BatchResult(
        total=total,
        success=len(acc.outcomes),
        fail=len(acc.errors),
        errors=tuple(acc.errors),
        outcomes=tuple(acc.outcomes),
    )
    log.info("batch_completed", total=result.total, success=result.success, fail=result.fail)
    return result
