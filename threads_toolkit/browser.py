from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from playwright.sync_api import Error as PWError
from playwright.sync_api import Page, Request, Route
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from .config_schema import BrowserConfig
from .document import ResponseCallback
from .errors import ConfigError
from .phrases import PLATFORM_HOSTS
from .run_log import Logger, NullLogger

_LAUNCH_ARGS = ["--disable-gpu", "--no-sandbox"]
_BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})

_LOCAL_STORAGE_SCRIPT = """
(() => {
  const entries = %s;
  const items = entries[window.location.origin];
  if (!items) return;
  for (const item of items) {
    window.localStorage.setItem(item.name, item.value);
  }
})();
"""


class PlaywrightDocument:
    """DocumentHandle over a sync Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def page(self) -> Page:
        return self._page

    def goto(self, url: str, *, timeout_ms: int | None = None) -> None:
        self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    def html(self) -> str:
        return self._page.content()

    def attribute_values(self, selector: str, name: str) -> list[str]:
        values = self._page.eval_on_selector_all(
            selector,
            "(els, name) => els.map((el) => el.getAttribute(name))",
            name,
        )
        return [v for v in values if isinstance(v, str)]

    def is_visible(self, selector: str) -> bool:
        try:
            return self._page.locator(selector).first.is_visible()
        except PWError:
            return False

    def viewport_height(self) -> int:
        return int(self._page.evaluate("() => window.innerHeight"))

    def scroll_by(self, dy: float) -> None:
        self._page.evaluate("(dy) => window.scrollBy(0, dy)", dy)

    def wait(self, ms: int) -> None:
        self._page.wait_for_timeout(ms)

    def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        try:
            self._page.wait_for_selector(selector, timeout=timeout_ms)
        except PWTimeout:
            return False
        return True

    def wait_for_hidden(self, selector: str, *, timeout_ms: int) -> bool:
        try:
            self._page.locator(selector).first.wait_for(state="hidden", timeout=timeout_ms)
        except PWTimeout:
            return False
        return True

    def click(self, selector: str, index: int = 0) -> None:
        self._page.locator(selector).nth(index).click()

    def press(self, key: str) -> None:
        self._page.keyboard.press(key)

    def on_response(self, callback: ResponseCallback) -> None:
        def _handler(response: Any) -> None:
            try:
                content_type = response.headers.get("content-type", "")
            except PWError:
                content_type = ""
            callback(response.url, content_type)

        self._page.on("response", _handler)


def _is_platform_origin(origin: str) -> bool:
    return any(host in (origin or "") for host in PLATFORM_HOSTS)


def load_storage_state(cfg: BrowserConfig, *, logger: Logger | None = None) -> dict[str, Any] | None:
    """
    Return the storage state to inject, or None to run unauthenticated.

    State is used only when `use_cookies` is enabled and the file holds cookies or origins.
    """
    log = logger or NullLogger()
    if not cfg.use_cookies:
        return None

    if not cfg.storage_state_path:
        log.warning("storage_state_missing", reason="use_cookies enabled without storage_state_path")
        return None

    path = Path(cfg.storage_state_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read storage state: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Storage state is not valid JSON: {path}: {e}") from e

    if not isinstance(data, dict) or not (data.get("cookies") or data.get("origins")):
        log.warning("storage_state_empty", path=str(path))
        return None

    return data


def _apply_storage_state(context: Any, state: dict[str, Any], log: Logger) -> None:
    cookies = [c for c in state.get("cookies") or [] if isinstance(c, dict)]
    if cookies:
        context.add_cookies(cookies)
        log.info("cookies_injected", count=len(cookies))

    entries: dict[str, list[dict[str, str]]] = {}
    for origin in state.get("origins") or []:
        if not isinstance(origin, dict):
            continue
        origin_url = str(origin.get("origin") or "")
        if not _is_platform_origin(origin_url):
            log.debug("storage_origin_skipped", origin=origin_url)
            continue
        items = [i for i in origin.get("localStorage") or [] if isinstance(i, dict)]
        if items:
            entries[origin_url] = items
            log.info("local_storage_injected", origin=origin_url, count=len(items))

    if entries:
        context.add_init_script(script=_LOCAL_STORAGE_SCRIPT % json.dumps(entries))


def _block_heavy(route: Route, request: Request) -> None:
    if request.resource_type in _BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()


@contextmanager
def open_browser_session(
    cfg: BrowserConfig, *, logger: Logger | None = None
) -> Iterator[PlaywrightDocument]:
    """
    Start a private browser for one task and yield its document.

    Sync Playwright is bound to the thread that starts it, so every task owns
    its own instance.
    """
    log = logger or NullLogger()
    state = load_storage_state(cfg, logger=log)

    with sync_playwright() as pw:
        launch_kwargs: dict[str, Any] = {"headless": cfg.headless, "args": list(_LAUNCH_ARGS)}
        if cfg.proxy_server:
            launch_kwargs["proxy"] = {"server": cfg.proxy_server}

        browser = pw.chromium.launch(**launch_kwargs)
        try:
            context = browser.new_context()
            if state is not None:
                _apply_storage_state(context, state, log)

            page = context.new_page()
            page.set_default_navigation_timeout(cfg.navigation_timeout_ms)
            if cfg.block_heavy_resources:
                page.route("**/*", _block_heavy)

            yield PlaywrightDocument(page)
        finally:
            browser.close()
