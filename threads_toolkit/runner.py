from __future__ import annotations

import time
from typing import Callable, ContextManager

from .actions import ActionContext, TaskOutcome, run_hashtag, run_post, run_profile, run_search
from .batch import BatchResult, BatchTask, run_batch
from .browser import open_browser_session
from .config_schema import AppConfig
from .document import DocumentHandle, MediaCapture
from .pagination import ClockFn
from .retry import RetryEvent, SleepFn, with_retry
from .run_log import Logger, NullLogger
from .sink import RecordSink

SessionFactory = Callable[..., ContextManager[DocumentHandle]]
Action = Callable[[ActionContext, str], TaskOutcome]


def _task_fn(
    name: str,
    action: Action,
    target: str,
    *,
    config: AppConfig,
    sink: RecordSink,
    logger: Logger,
    session_factory: SessionFactory,
    sleep_fn: SleepFn | None,
    clock: ClockFn,
) -> Callable[[], TaskOutcome]:
    log = logger.bind(task=name)

    def _on_retry(event: RetryEvent) -> None:
        log.warning(
            "rate_limit_retry",
            attempt=event.failure_attempt,
            next_attempt=event.next_attempt,
            max_attempts=event.max_attempts,
            delay_seconds=event.delay_seconds,
            error=event.error_message,
        )

    def _on_exhausted(event: RetryEvent) -> None:
        log.error("rate_limit_retries_exhausted", attempts=event.failure_attempt)

    def _attempt() -> TaskOutcome:
        # A fresh session (and media arena) per attempt.
        with session_factory(config.browser, logger=log) as document:
            media = MediaCapture().attach(document)
            ctx = ActionContext(
                document=document,
                media=media,
                sink=sink,
                config=config,
                logger=log,
                sleep_fn=sleep_fn,
                clock=clock,
            )
            return action(ctx, target)

    def _run() -> TaskOutcome:
        return with_retry(
            _attempt,
            config.retry,
            operation=name,
            on_retry=_on_retry,
            on_exhausted=_on_exhausted,
            sleep_fn=sleep_fn,
        )

    return _run


def build_tasks(
    config: AppConfig,
    *,
    sink: RecordSink,
    logger: Logger | None = None,
    session_factory: SessionFactory = open_browser_session,
    sleep_fn: SleepFn | None = None,
    clock: ClockFn = time.monotonic,
) -> list[BatchTask]:
    """One named task per configured input, in input order."""
    log = logger or NullLogger()
    inputs = config.inputs

    planned: list[tuple[str, Action, str]] = []
    planned.extend((f"search:{kw}", run_search, kw) for kw in inputs.keywords)
    planned.extend((f"profile:{u}", run_profile, u) for u in inputs.usernames)
    planned.extend((f"hashtag:{t}", run_hashtag, t) for t in inputs.tags)
    planned.extend((f"post:{url}", run_post, url) for url in inputs.post_urls)

    return [
        BatchTask(
            name=name,
            fn=_task_fn(
                name,
                action,
                target,
                config=config,
                sink=sink,
                logger=log,
                session_factory=session_factory,
                sleep_fn=sleep_fn,
                clock=clock,
            ),
        )
        for name, action, target in planned
    ]


def run(
    config: AppConfig,
    *,
    sink: RecordSink,
    logger: Logger | None = None,
    session_factory: SessionFactory = open_browser_session,
    sleep_fn: SleepFn | None = None,
    clock: ClockFn = time.monotonic,
) -> BatchResult:
    log = logger or NullLogger()
    tasks = build_tasks(
        config,
        sink=sink,
        logger=log,
        session_factory=session_factory,
        sleep_fn=sleep_fn,
        clock=clock,
    )
    if not tasks:
        log.warning("no_tasks", reason="inputs lists no keywords, usernames, tags or post_urls")
    return run_batch(tasks, config.batch.concurrency, logger=log)
