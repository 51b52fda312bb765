from __future__ import annotations

import threading
import unittest
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from threads_pages import RATE_LIMITED_PAGE, feed_page, link_only_page, page, post_block

from threads_toolkit.config_schema import AppConfig, BatchConfig, InputsConfig, RetryPolicyConfig
from threads_toolkit.offline import StaticDocument
from threads_toolkit.report import build_batch_report
from threads_toolkit.runner import build_tasks, run
from threads_toolkit.sink import MemorySink


class _Sessions:
    """Hands out one StaticDocument per opened session, keyed by call order."""

    def __init__(self, pages: list[str]) -> None:
        self._pages = list(pages)
        self._lock = threading.Lock()
        self.opened = 0

    @contextmanager
    def __call__(self, cfg: object, *, logger: object = None) -> Iterator[StaticDocument]:
        with self._lock:
            html = self._pages[min(self.opened, len(self._pages) - 1)]
            self.opened += 1
        yield StaticDocument.from_html(html)


@dataclass
class _VideoDocument(StaticDocument):
    """Emits one video response on navigation, after the other session has too."""

    video_url: str = ""
    barrier: threading.Barrier | None = None

    def goto(self, url: str, *, timeout_ms: int | None = None) -> None:
        super().goto(url, timeout_ms=timeout_ms)
        self.emit_response(self.video_url, "video/mp4")
        if self.barrier is not None:
            self.barrier.wait(timeout=5)


class _VideoSessions:
    """Session i serves post P<i> with a blob video and captures session-<i>.mp4."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._barrier = threading.Barrier(2)
        self.opened = 0

    @contextmanager
    def __call__(self, cfg: object, *, logger: object = None) -> Iterator[StaticDocument]:
        with self._lock:
            i = self.opened
            self.opened += 1
        blob = '<video src="blob:https://www.threads.com/stream"></video>'
        yield _VideoDocument(
            snapshots=[page(post_block(f"P{i}", extra=blob))],
            video_url=f"https://video.example/session-{i}.mp4",
            barrier=self._barrier,
        )


def _config(**inputs: object) -> AppConfig:
    return AppConfig(
        inputs=InputsConfig(**inputs),  # type: ignore[arg-type]
        retry=RetryPolicyConfig(request_delay_ms=0),
        batch=BatchConfig(concurrency=1),
    )


class TestBuildTasks(unittest.TestCase):
    def test_names_follow_inputs(self) -> None:
        cfg = _config(
            keywords=["running"],
            usernames=["@alice"],
            tags=["#fit"],
            post_urls=["https://www.threads.com/@a/post/X"],
        )
        tasks = build_tasks(cfg, sink=MemorySink(), session_factory=_Sessions([""]))
        self.assertEqual(
            [t.name for t in tasks],
            ["search:running", "profile:alice", "hashtag:fit", "post:https://www.threads.com/@a/post/X"],
        )


class TestRun(unittest.TestCase):
    def test_rate_limited_task_is_retried_with_a_fresh_session(self) -> None:
        sessions = _Sessions([RATE_LIMITED_PAGE, feed_page(["A1"])])
        sleeps: list[float] = []
        sink = MemorySink()

        result = run(
            _config(keywords=["running"]),
            sink=sink,
            session_factory=sessions,
            sleep_fn=sleeps.append,
            clock=lambda: 0.0,
        )

        self.assertEqual((result.total, result.success, result.fail), (1, 1, 0))
        self.assertEqual(sessions.opened, 2)
        self.assertEqual(sleeps, [5.0])
        self.assertEqual([r["id"] for r in sink.records], ["A1"])

    def test_failed_task_does_not_stop_others(self) -> None:
        cfg = _config(keywords=["a", "b"], post_urls=["not a url"])
        sink = MemorySink()

        result = run(
            cfg,
            sink=sink,
            session_factory=_Sessions([feed_page(["A1"]), link_only_page([])]),
            sleep_fn=lambda _s: None,
            clock=lambda: 0.0,
        )

        self.assertEqual(result.total, 3)
        self.assertEqual(result.fail, 1)
        self.assertEqual(result.errors[0].task_name, "post:not a url")
        self.assertEqual(result.errors[0].error_type, "InvalidTaskError")

        report = build_batch_report(result)
        self.assertEqual(report["status"], "partial")
        self.assertEqual(report["details"]["records_emitted"], 1)

    def test_captured_video_stays_with_its_own_task(self) -> None:
        sessions = _VideoSessions()
        cfg = AppConfig(
            inputs=InputsConfig(keywords=["a", "b"]),
            retry=RetryPolicyConfig(request_delay_ms=0),
            batch=BatchConfig(concurrency=2),
        )
        sink = MemorySink()

        result = run(
            cfg, sink=sink, session_factory=sessions, sleep_fn=lambda _s: None, clock=lambda: 0.0
        )

        self.assertEqual((result.success, result.fail), (2, 0))
        by_id = {r["id"]: r["videos"] for r in sink.records}
        self.assertEqual(
            by_id,
            {
                "P0": ["https://video.example/session-0.mp4"],
                "P1": ["https://video.example/session-1.mp4"],
            },
        )

    def test_no_inputs(self) -> None:
        result = run(_config(), sink=MemorySink(), session_factory=_Sessions([""]))
        self.assertEqual(result.total, 0)


if __name__ == "__main__":
    unittest.main()
