from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from bs4 import BeautifulSoup

from .document import ResponseCallback


@dataclass
class StaticDocument:
    """
    Network-free DocumentHandle over saved HTML snapshots.

    Scrolling walks forward through `snapshots`, one snapshot per
    `scrolls_per_snapshot` calls to scroll_by, which is how a virtualized feed
    looks from the outside: items appear, then drop out of the DOM again.
    Waiting never sleeps; it only adds to `waited_ms`.
    """

    snapshots: Sequence[str]
    scrolls_per_snapshot: int = 1
    viewport: int = 800

    index: int = 0
    scroll_calls: int = 0
    waited_ms: int = 0
    visited: list[str] = field(default_factory=list)
    clicks: list[tuple[str, int]] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)
    _callbacks: list[ResponseCallback] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.snapshots:
            raise ValueError("at least one snapshot is required")
        if self.scrolls_per_snapshot <= 0:
            raise ValueError("scrolls_per_snapshot must be positive")

    @classmethod
    def from_html(cls, html: str) -> "StaticDocument":
        return cls(snapshots=[html])

    def _soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html(), "lxml")

    def goto(self, url: str, *, timeout_ms: int | None = None) -> None:
        self.visited.append(url)
        self.index = 0
        self.scroll_calls = 0

    def html(self) -> str:
        return self.snapshots[self.index]

    def attribute_values(self, selector: str, name: str) -> list[str]:
        out: list[str] = []
        for el in self._soup().select(selector):
            value = el.get(name)
            if isinstance(value, str):
                out.append(value)
        return out

    def is_visible(self, selector: str) -> bool:
        return self._soup().select_one(selector) is not None

    def viewport_height(self) -> int:
        return self.viewport

    def scroll_by(self, dy: float) -> None:
        self.scroll_calls += 1
        if self.scroll_calls % self.scrolls_per_snapshot == 0:
            self.index = min(self.index + 1, len(self.snapshots) - 1)

    def wait(self, ms: int) -> None:
        self.waited_ms += max(0, int(ms))

    def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        if self.is_visible(selector):
            return True
        self.wait(timeout_ms)
        return False

    def wait_for_hidden(self, selector: str, *, timeout_ms: int) -> bool:
        if not self.is_visible(selector):
            return True
        self.wait(timeout_ms)
        return False

    def click(self, selector: str, index: int = 0) -> None:
        self.clicks.append((selector, index))

    def press(self, key: str) -> None:
        self.keys.append(key)

    def on_response(self, callback: ResponseCallback) -> None:
        self._callbacks.append(callback)

    def emit_response(self, url: str, content_type: str = "") -> None:
        for callback in list(self._callbacks):
            callback(url, content_type)
