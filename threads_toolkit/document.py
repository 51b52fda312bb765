from __future__ import annotations

import re
from collections import deque
from threading import Lock
from typing import Callable, Deque, Protocol, Sequence

ResponseCallback = Callable[[str, str], None]

_VIDEO_URL_RE = re.compile(r"\.(mp4|m3u8)(\?|$)", re.IGNORECASE)


class DocumentHandle(Protocol):
    def goto(self, url: str, *, timeout_ms: int | None = None) -> None: ...

    def html(self) -> str: ...

    def attribute_values(self, selector: str, name: str) -> list[str]: ...

    def is_visible(self, selector: str) -> bool: ...

    def viewport_height(self) -> int: ...

    def scroll_by(self, dy: float) -> None: ...

    def wait(self, ms: int) -> None: ...

    def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool: ...

    def wait_for_hidden(self, selector: str, *, timeout_ms: int) -> bool: ...

    def click(self, selector: str, index: int = 0) -> None: ...

    def press(self, key: str) -> None: ...

    def on_response(self, callback: ResponseCallback) -> None: ...


def is_video_response(url: str, content_type: str) -> bool:
    ct = (content_type or "").strip().casefold()
    return ct.startswith("video/") or bool(_VIDEO_URL_RE.search(url or ""))


class MediaCapture:
    """
    Video URLs observed on one task's document session.

    Owned by the task and passed explicitly to the extractor, which drains it
    item by item. Never shared between tasks.
    """

    def __init__(self) -> None:
        self._pending: Deque[str] = deque()
        self._seen: set[str] = set()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def attach(self, document: DocumentHandle) -> "MediaCapture":
        document.on_response(self.observe)
        return self

    def observe(self, url: str, content_type: str) -> None:
        if not is_video_response(url, content_type):
            return
        with self._lock:
            if url in self._seen:
                return
            self._seen.add(url)
            self._pending.append(url)

    def drain(self, limit: int) -> list[str]:
        """Pop up to `limit` captured URLs in capture order."""
        out: list[str] = []
        with self._lock:
            while self._pending and len(out) < limit:
                out.append(self._pending.popleft())
        return out

    def pending(self) -> Sequence[str]:
        with self._lock:
            return tuple(self._pending)
