from __future__ import annotations

import unittest

from threads_toolkit.models import Author, PostRecord, PostStats


def _post(post_id: str, **overrides: object) -> PostRecord:
    fields: dict[str, object] = {
        "id": post_id,
        "url": f"https://www.threads.com/@alice/post/{post_id}",
        "author": Author(username="alice", display_name="Alice"),
        "content": "hello there",
        "timestamp": "2025-01-02T03:04:05.000Z",
    }
    fields.update(overrides)
    return PostRecord(**fields)  # type: ignore[arg-type]


class TestPostStats(unittest.TestCase):
    def test_negative_counts_are_rejected(self) -> None:
        for name in ("likes", "replies", "reposts"):
            with self.assertRaises(ValueError):
                PostStats(**{name: -1})

    def test_zero_is_allowed(self) -> None:
        self.assertEqual(PostStats(), PostStats(likes=0, replies=0, reposts=0))


class TestQuotedPost(unittest.TestCase):
    def test_nests_one_level_only(self) -> None:
        inner = _post("Q2")
        middle = _post("Q1", quoted_post=inner)
        with self.assertRaises(ValueError):
            _post("P1", quoted_post=middle)

    def test_output_shape(self) -> None:
        quoted = _post("Q1", author=Author(username="bob"), content="original words")
        out = _post("P1", stats=PostStats(likes=4), quoted_post=quoted).to_output(source="search")

        self.assertEqual(out["stats"], {"likes": 4, "replies": 0, "reposts": 0})
        self.assertEqual(out["source"], "search")
        self.assertEqual(out["quotedPost"]["id"], "Q1")
        self.assertEqual(out["quotedPost"]["content"], "original words")
        self.assertEqual(out["quotedPost"]["author"]["username"], "bob")
        self.assertEqual(out["quotedPost"]["author"]["displayName"], "bob")
        self.assertNotIn("quotedPost", out["quotedPost"])
        self.assertNotIn("source", out["quotedPost"])
        self.assertNotIn("images", out)


if __name__ == "__main__":
    unittest.main()
