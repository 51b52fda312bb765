from __future__ import annotations

import unittest

from threads_pages import (
    EMPTY_PAGE,
    ERROR_PAGE,
    LOGIN_WALL_PAGE,
    NOT_FOUND_PAGE,
    RATE_LIMITED_PAGE,
    feed_page,
)

from threads_toolkit.classifier import classify, classify_html, is_not_found, raise_for_page_state
from threads_toolkit.errors import LoginWallError, PlatformError, RateLimitError
from threads_toolkit.offline import StaticDocument


class _SnapshotOnly:
    def __init__(self, html: str) -> None:
        self._html = html

    def html(self) -> str:
        return self._html


class TestClassify(unittest.TestCase):
    def test_content_page(self) -> None:
        state = classify(StaticDocument.from_html(feed_page(["A1", "B2"])))
        self.assertFalse(state.is_login_wall)
        self.assertFalse(state.is_rate_limited)
        self.assertFalse(state.is_error_page)
        self.assertFalse(state.is_empty)
        self.assertTrue(state.has_main_content)
        self.assertEqual(state.post_link_count, 2)
        self.assertEqual(state.error_message, "")
        raise_for_page_state(state, "search")

    def test_counts_links_from_the_read_snapshot_alone(self) -> None:
        state = classify(_SnapshotOnly(feed_page(["A1", "B2", "C3"])))  # type: ignore[arg-type]
        self.assertEqual(state.post_link_count, 3)
        self.assertTrue(state.has_main_content)

    def test_rate_limit_takes_precedence(self) -> None:
        state = classify_html(RATE_LIMITED_PAGE)
        self.assertTrue(state.is_rate_limited)
        self.assertTrue(state.is_error_page)
        self.assertEqual(state.error_message, "Rate limited by Threads")
        with self.assertRaises(RateLimitError):
            raise_for_page_state(state, "search")

    def test_login_wall(self) -> None:
        state = classify_html(LOGIN_WALL_PAGE)
        self.assertTrue(state.is_login_wall)
        self.assertEqual(state.error_message, "Login required")
        with self.assertRaises(LoginWallError):
            raise_for_page_state(state, "search")

    def test_login_link_inside_dialog(self) -> None:
        html = '<html><body><div role="dialog"><a href="/login">Continue</a></div></body></html>'
        self.assertTrue(classify_html(html).is_login_wall)

    def test_error_page(self) -> None:
        state = classify_html(ERROR_PAGE)
        self.assertTrue(state.is_error_page)
        self.assertEqual(state.error_message, "Something went wrong")
        with self.assertRaises(PlatformError):
            raise_for_page_state(state, "profile")

    def test_empty_page(self) -> None:
        state = classify_html(EMPTY_PAGE)
        self.assertTrue(state.is_empty)
        self.assertFalse(state.has_main_content)
        self.assertEqual(state.error_message, "No content")
        raise_for_page_state(state, "search")

    def test_short_text_with_main_region_is_empty(self) -> None:
        state = classify_html('<html><body><div role="main"><p>No results</p></div></body></html>')
        self.assertTrue(state.has_main_content)
        self.assertTrue(state.is_empty)

    def test_scripts_do_not_count_as_visible_text(self) -> None:
        html = (
            '<html><body><div role="main"><p>Hi</p></div>'
            '<script>var msg = "rate limit exceeded, too many requests";</script>'
            "</body></html>"
        )
        state = classify_html(html)
        self.assertFalse(state.is_rate_limited)
        self.assertTrue(state.is_empty)

    def test_not_found(self) -> None:
        self.assertTrue(is_not_found(StaticDocument.from_html(NOT_FOUND_PAGE)))
        self.assertFalse(is_not_found(StaticDocument.from_html(EMPTY_PAGE)))


if __name__ == "__main__":
    unittest.main()
