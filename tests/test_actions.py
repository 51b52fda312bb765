from __future__ import annotations

import unittest
from datetime import datetime, timezone

from threads_pages import (
    EMPTY_PAGE,
    LOGIN_WALL_PAGE,
    NOT_FOUND_PAGE,
    RATE_LIMITED_PAGE,
    feed_page,
    page,
    post_block,
    profile_page,
)

from threads_toolkit.actions import (
    ActionContext,
    build_hashtag_url,
    build_profile_url,
    build_search_url,
    run_hashtag,
    run_post,
    run_profile,
    run_search,
)
from threads_toolkit.config_schema import AppConfig, InputsConfig, RetryPolicyConfig
from threads_toolkit.document import MediaCapture
from threads_toolkit.errors import (
    InvalidTaskError,
    LoginWallError,
    NotFoundError,
    PlatformError,
    RateLimitError,
)
from threads_toolkit.offline import StaticDocument
from threads_toolkit.run_log import NullLogger
from threads_toolkit.sink import MemorySink


def _now() -> datetime:
    return datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def _config(**inputs: object) -> AppConfig:
    return AppConfig(
        inputs=InputsConfig(**inputs),  # type: ignore[arg-type]
        retry=RetryPolicyConfig(request_delay_ms=250),
    )


def _ctx(html: str, config: AppConfig | None = None) -> tuple[ActionContext, MemorySink, list[float]]:
    document = StaticDocument.from_html(html)
    sink = MemorySink()
    sleeps: list[float] = []
    ctx = ActionContext(
        document=document,
        media=MediaCapture().attach(document),
        sink=sink,
        config=config or _config(),
        logger=NullLogger(),
        sleep_fn=sleeps.append,
        clock=lambda: 0.0,
        now=_now,
    )
    return ctx, sink, sleeps


class TestUrls(unittest.TestCase):
    def test_search_url(self) -> None:
        self.assertEqual(
            build_search_url("running shoes"),
            "https://www.threads.com/search?q=running+shoes&serp_type=default",
        )
        self.assertTrue(build_search_url("x", "top").endswith("&filter=top"))

    def test_hashtag_and_profile_urls(self) -> None:
        self.assertEqual(
            build_hashtag_url("#running"),
            "https://www.threads.com/search?q=%23running&serp_type=default",
        )
        self.assertEqual(build_profile_url("@alice"), "https://www.threads.com/@alice")


class TestFeedActions(unittest.TestCase):
    def test_search_emits_valid_posts(self) -> None:
        ctx, sink, sleeps = _ctx(feed_page(["A1", "B2"]))

        outcome = run_search(ctx, "running")

        self.assertEqual(outcome.emitted, 2)
        self.assertEqual(outcome.skip_reasons, {})
        self.assertEqual([r["id"] for r in sink.records], ["A1", "B2"])
        self.assertTrue(all(r["source"] == "search" for r in sink.records))
        self.assertEqual(sleeps, [0.25])
        self.assertEqual(
            ctx.document.visited,  # type: ignore[attr-defined]
            ["https://www.threads.com/search?q=running&serp_type=default"],
        )

    def test_invalid_posts_are_counted(self) -> None:
        html = page(post_block("A1") + post_block("B2", text="ok") + post_block("C3", timestamp="", extra=""))
        html = html.replace("<time>1d</time>", "<time></time>")
        ctx, sink, _ = _ctx(html)

        outcome = run_hashtag(ctx, "#running")

        self.assertEqual(outcome.target, "running")
        self.assertEqual(outcome.emitted, 1)
        self.assertEqual(dict(outcome.skip_reasons), {"noContent": 1, "noTimestamp": 1})
        self.assertEqual(sink.records[0]["source"], "hashtag")

    def test_max_items_caps_emitted(self) -> None:
        ctx, sink, _ = _ctx(feed_page(["A", "B", "C"]), _config(max_items=2))
        outcome = run_search(ctx, "x")
        self.assertEqual(outcome.emitted, 2)
        self.assertEqual(len(sink), 2)

    def test_fallback_classification(self) -> None:
        for html, error in (
            (RATE_LIMITED_PAGE, RateLimitError),
            (LOGIN_WALL_PAGE, LoginWallError),
        ):
            ctx, _, _ = _ctx(html)
            with self.assertRaises(error):
                run_search(ctx, "x")

    def test_empty_results_are_not_an_error(self) -> None:
        ctx, sink, _ = _ctx(EMPTY_PAGE)
        outcome = run_search(ctx, "nothing")
        self.assertTrue(outcome.empty)
        self.assertEqual(len(sink), 0)


class TestProfileAction(unittest.TestCase):
    def test_profile_and_posts(self) -> None:
        ctx, sink, _ = _ctx(profile_page(posts=["P1", "P2"]))

        outcome = run_profile(ctx, "@alice")

        self.assertEqual(outcome.emitted, 3)
        profile = sink.records[0]
        self.assertEqual(profile["type"], "profile")
        self.assertEqual(profile["username"], "alice")
        self.assertEqual(profile["followersCount"], 12_000)
        self.assertIsNone(profile["location"])
        self.assertIsNone(profile["joinedDate"])
        self.assertTrue(profile["partial"])
        self.assertEqual(profile["missingFields"], ["location", "joinedDate"])

        posts = sink.records[1:]
        self.assertEqual([p["id"] for p in posts], ["P1", "P2"])
        self.assertTrue(all(p["source"] == "profile_posts" for p in posts))
        self.assertTrue(all(p["profile"] == "alice" for p in posts))

    def test_profile_without_posts(self) -> None:
        ctx, sink, _ = _ctx(profile_page(posts=["P1"]), _config(include_posts=False))
        outcome = run_profile(ctx, "alice")
        self.assertEqual(outcome.emitted, 1)
        self.assertEqual(len(sink), 1)

    def test_not_found(self) -> None:
        ctx, _, _ = _ctx(NOT_FOUND_PAGE)
        with self.assertRaises(NotFoundError):
            run_profile(ctx, "ghost")

    def test_unknown_failure(self) -> None:
        ctx, _, _ = _ctx(EMPTY_PAGE)
        with self.assertRaises(PlatformError):
            run_profile(ctx, "ghost")


class TestPostAction(unittest.TestCase):
    def test_main_post_and_replies(self) -> None:
        html = page(
            post_block("MAIN1")
            + post_block("R1", username="bob", display_name="Bob", text="Great run, keep going!")
            + post_block("R2", username="cy", display_name="Cy", text="ok")
        )
        ctx, sink, _ = _ctx(html)

        outcome = run_post(ctx, "threads.net/@alice/post/MAIN1")

        self.assertEqual(outcome.emitted, 2)
        main, reply = sink.records
        self.assertEqual(main["id"], "MAIN1")
        self.assertEqual(main["url"], "https://threads.com/@alice/post/MAIN1")
        self.assertNotIn("source", main)
        self.assertEqual(reply["id"], "R1")
        self.assertEqual(reply["source"], "reply")
        self.assertEqual(reply["parentId"], "MAIN1")
        self.assertEqual(dict(outcome.skip_reasons), {"noContent": 1})

    def test_invalid_urls(self) -> None:
        ctx, _, _ = _ctx(EMPTY_PAGE)
        with self.assertRaises(InvalidTaskError):
            run_post(ctx, "https://example.com/post/X")
        with self.assertRaises(InvalidTaskError):
            run_post(ctx, "https://www.threads.com/@alice")

    def test_missing_post(self) -> None:
        ctx, _, _ = _ctx(NOT_FOUND_PAGE)
        with self.assertRaises(NotFoundError):
            run_post(ctx, "https://www.threads.com/@alice/post/GONE")


if __name__ == "__main__":
    unittest.main()
