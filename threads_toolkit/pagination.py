from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from . import selectors as sel
from .config_schema import ScrollConfig
from .document import DocumentHandle
from .normalize import extract_post_id
from .run_log import Logger, NullLogger

ClockFn = Callable[[], float]

STOP_TARGET_REACHED = "target_reached"
STOP_NO_PROGRESS = "no_progress"
STOP_MAX_ATTEMPTS = "max_attempts"
STOP_TIMEOUT = "timeout"


@dataclass
class ScrollSession:
    """
    Identity-based progress across scroll cycles.

    The feed unloads items that scrolled away, so progress is measured on the
    union of every id ever seen, never on what is rendered right now.
    """

    started_at: float
    seen_ids: set[str] = field(default_factory=set)
    attempts: int = 0
    no_progress: int = 0

    def record(self, ids: Iterable[str]) -> int:
        before = len(self.seen_ids)
        self.seen_ids.update(i for i in ids if i)
        added = len(self.seen_ids) - before
        self.no_progress = 0 if added else self.no_progress + 1
        return added

    @property
    def seen(self) -> int:
        return len(self.seen_ids)


@dataclass(frozen=True)
class ScrollOutcome:
    stop_reason: str
    seen: int
    attempts: int
    elapsed_seconds: float


def attempt_cap(target: int, cfg: ScrollConfig) -> int:
    per_target = math.ceil(max(0, int(target)) / cfg.items_per_attempt) + cfg.extra_attempts
    return min(cfg.max_attempts_cap, per_target)


def overshoot_reached(seen: int, target: int, cfg: ScrollConfig) -> bool:
    return seen >= cfg.overshoot_factor * target


def rendered_item_ids(document: DocumentHandle) -> list[str]:
    out: list[str] = []
    for href in document.attribute_values(sel.POST_LINK, "href"):
        post_id = extract_post_id(href)
        if post_id:
            out.append(post_id)
    return out


def scroll_cycle(document: DocumentHandle, cfg: ScrollConfig) -> None:
    """Scroll in sub-steps to trigger lazy rendering, then let the feed settle."""
    step = document.viewport_height() * cfg.step_fraction
    for _ in range(cfg.sub_steps):
        document.scroll_by(step)
        document.wait(cfg.step_pause_ms)

    if document.is_visible(sel.SPINNER):
        # A spinner that never clears is not an error; the cycle just ends.
        document.wait_for_hidden(sel.SPINNER, timeout_ms=cfg.spinner_timeout_ms)

    document.wait(cfg.settle_delay_ms)


def paginate(
    document: DocumentHandle,
    target: int,
    cfg: ScrollConfig,
    *,
    logger: Logger | None = None,
    clock: ClockFn = time.monotonic,
) -> ScrollOutcome:
    """
    Scroll until enough distinct items have been rendered or a limit runs out.

    Stops at the first of: `max_no_progress` cycles in a row without a new id,
    the attempt cap, the global timeout, or `overshoot_factor * target` ids seen.
    Extraction is left to the caller, which reads the final document once.
    """
    log = logger or NullLogger()
    session = ScrollSession(started_at=clock())
    max_attempts = attempt_cap(target, cfg)
    reason = STOP_MAX_ATTEMPTS

    while session.attempts < max_attempts:
        elapsed = clock() - session.started_at
        if elapsed > cfg.global_timeout_seconds:
            reason = STOP_TIMEOUT
            log.info("scroll_timeout", elapsed_seconds=round(elapsed, 1), seen=session.seen)
            break

        session.attempts += 1
        try:
            scroll_cycle(document, cfg)
            ids = rendered_item_ids(document)
        except Exception as exc:
            log.warning("scroll_cycle_failed", attempt=session.attempts, error=str(exc))
            ids = []

        added = session.record(ids)
        log.info(
            "scroll_progress",
            attempt=session.attempts,
            new_items=added,
            seen=session.seen,
            no_progress=session.no_progress,
        )

        if overshoot_reached(session.seen, target, cfg):
            reason = STOP_TARGET_REACHED
            break
        if session.no_progress >= cfg.max_no_progress:
            reason = STOP_NO_PROGRESS
            break

    outcome = ScrollOutcome(
        stop_reason=reason,
        seen=session.seen,
        attempts=session.attempts,
        elapsed_seconds=clock() - session.started_at,
    )
    log.info(
        "scroll_completed",
        stop_reason=outcome.stop_reason,
        seen=outcome.seen,
        attempts=outcome.attempts,
    )
    return outcome
