from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from . import selectors as sel
from .document import DocumentHandle
from .errors import LoginWallError, PlatformError, RateLimitError
from .models import PageState
from .phrases import (
    ERROR_PHRASES,
    LOGIN_PHRASES,
    NOT_FOUND_PHRASES,
    RATE_LIMIT_PHRASES,
    contains_any,
    first_match,
)

MIN_VISIBLE_TEXT_CHARS = 50

_INVISIBLE_TAGS = ["script", "style", "noscript", "template"]


def visible_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    for tag in body.find_all(_INVISIBLE_TAGS):
        tag.decompose()
    return body.get_text(" ", strip=True)


def _has_login_control(soup: BeautifulSoup) -> bool:
    for control in soup.select(sel.LOGIN_CONTROL):
        if contains_any(control.get_text(strip=True), LOGIN_PHRASES, casefold=False):
            return True
    return soup.select_one(sel.LOGIN_DIALOG_LINK) is not None


def _has_main_content(soup: BeautifulSoup) -> bool:
    main = soup.select_one(sel.MAIN_REGION)
    if main is None:
        return False
    return any(isinstance(child, Tag) for child in main.children)


def classify_html(html: str) -> PageState:
    """
    Classify a rendered page without touching it.

    The error message follows rate limit > error page > login wall > empty.
    """
    soup = BeautifulSoup(html or "", "lxml")

    is_login_wall = _has_login_control(soup)
    has_main_content = _has_main_content(soup)
    post_link_count = len(soup.select(sel.POST_LINK))

    text = visible_text(soup)
    is_rate_limited = contains_any(text, RATE_LIMIT_PHRASES)
    error_phrase = first_match(text, ERROR_PHRASES)
    is_error_page = error_phrase is not None

    is_empty = post_link_count == 0 and (
        not has_main_content or len(text) < MIN_VISIBLE_TEXT_CHARS
    )

    if is_rate_limited:
        message = "Rate limited by Threads"
    elif error_phrase is not None:
        message = error_phrase
    elif is_login_wall:
        message = "Login required"
    elif is_empty:
        message = "No content"
    else:
        message = ""

    return PageState(
        is_login_wall=is_login_wall,
        is_error_page=is_error_page,
        is_rate_limited=is_rate_limited,
        is_empty=is_empty,
        has_main_content=has_main_content,
        post_link_count=post_link_count,
        error_message=message,
    )


def classify(document: DocumentHandle) -> PageState:
    return classify_html(document.html())


def is_not_found_html(html: str) -> bool:
    return contains_any(html or "", NOT_FOUND_PHRASES, casefold=False)


def is_not_found(document: DocumentHandle) -> bool:
    return is_not_found_html(document.html())


def raise_for_page_state(state: PageState, context: str) -> None:
    """Raise the task-level failure a blocked page implies; return quietly otherwise."""
    if state.is_rate_limited:
        raise RateLimitError(
            f"Rate limited ({context}): Threads is limiting requests."
        )
    if state.is_login_wall:
        raise LoginWallError(
            f"Login required ({context}): Threads is showing a login wall. "
            "Try a different proxy, provide cookies, or reduce request frequency."
        )
    if state.is_error_page:
        raise PlatformError(
            f"Threads returned an error ({context}): {state.error_message}."
        )
