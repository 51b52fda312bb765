from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from bs4 import BeautifulSoup, Tag

from . import selectors as sel
from .document import DocumentHandle, MediaCapture
from .models import UNKNOWN_USERNAME, Author, PostRecord, PostStats, ProfileRecord
from .normalize import (
    NowFn,
    absolute_url,
    is_platform_url,
    normalize_timestamp,
    parse_compact_count,
    parse_post_href,
    parse_stat_number,
)
from .phrases import (
    ABOUT_PROFILE_LABELS,
    AVATAR_ALT_MARKERS,
    CONTAINER_CONTROL_LABELS,
    CONTENT_NOISE_PHRASES,
    FOLLOW_LABELS,
    LIKE_LABELS,
    MORE_MENU_LABELS,
    PROFILE_BIO_EXCLUDE,
    REPLY_LABELS,
    REPOST_LABELS,
    TRAILING_UI_REMNANTS,
    UI_LABELS,
    PhraseTable,
    all_phrases,
    alternation,
    contains_any,
)
from .run_log import Logger, NullLogger

ContainerResolver = Callable[[Tag, int], Optional[Tag]]

MAX_CONTAINER_DEPTH = 15
MIN_ACTION_CONTROLS = 2
MIN_TEXT_CHARS = 5
MIN_BIO_CHARS = 10
MAX_CONTENT_CHARS = 2000

_BARE_RELATIVE_TIME_RE = re.compile(r"^\d+[小時分鐘秒天週月年]?前?$")
_BARE_COMPACT_TIME_RE = re.compile(r"^\d+[mhd]$")
_BARE_NUMBER_RE = re.compile(r"^[\d,]+$")
_BARE_DATE_RE = re.compile(r"^\d{1,4}[/\-.]\d{1,2}[/\-.]\d{1,4}$")
_QUOTED_DATE_RE = re.compile(r"^\d+/\d+/\d+$")
_UI_LABEL_RE = re.compile(rf"^(?:{alternation(all_phrases(UI_LABELS))})", re.IGNORECASE)
_TRAILING_REMNANT_RE = re.compile(
    rf"\s*(?:{alternation(all_phrases(TRAILING_UI_REMNANTS))})\s*$", re.IGNORECASE
)

_JOINED_PATTERNS = (
    re.compile(r"Joined\s*([A-Za-z]+\s+\d{4})", re.IGNORECASE),
    re.compile(r"已加入\s*(\d{4}\s*年\s*\d{1,2}\s*月)"),
    re.compile(r"加入於\s*(\d{4}\s*年\s*\d{1,2}\s*月)"),
)
_LOCATION_PATTERNS = (
    re.compile(r"Based\s+in\s*([A-Za-z\s,]+?)(?:Verified|$)", re.IGNORECASE),
    re.compile(r"Location\s*[:：]?\s*([A-Za-z\s,]+?)(?:Verified|$)", re.IGNORECASE),
    re.compile(r"所在地\s*[:：]?\s*(.+?)(?:認證|$)"),
    re.compile(r"位置\s*[:：]?\s*(.+?)(?:認證|$)"),
)
_JOINED_SUFFIX_RE = re.compile(r"\s*[·•]\s*")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _text(el: Tag) -> str:
    return el.get_text().strip()


def _matches_label(text: str, table: PhraseTable, *, latin_prefix: bool = False) -> bool:
    """
    Native-script labels match anywhere in the text; English labels match
    case-insensitively, either anywhere or (with latin_prefix) at the start.
    """
    folded = (text or "").casefold()
    for locale, labels in table.items():
        for label in labels:
            if locale == "en":
                needle = label.casefold()
                if folded.startswith(needle) if latin_prefix else needle in folded:
                    return True
            elif label in text:
                return True
    return False


def is_action_control(text: str) -> bool:
    return _matches_label(text, CONTAINER_CONTROL_LABELS, latin_prefix=True)


def resolve_by_action_controls(link: Tag, max_depth: int) -> Tag | None:
    """
    Walk up from an item link to the nearest ancestor holding at least two
    like/comment/repost controls. Gives up after `max_depth` ancestors so an
    outer feed wrapper is never selected.
    """
    current = link.parent
    depth = 0
    while isinstance(current, Tag) and current.name != "[document]" and depth < max_depth:
        controls = sum(
            1 for btn in current.select(sel.ACTION_CONTROL) if is_action_control(btn.get_text())
        )
        if controls >= MIN_ACTION_CONTROLS:
            return current
        current = current.parent
        depth += 1
    return None


def _inside_interactive(el: Tag, *, names: Iterable[str], role_button: bool) -> bool:
    if el.name in names or (role_button and el.get("role") == "button"):
        return True
    for parent in el.parents:
        if parent.name in names:
            return True
        if role_button and parent.get("role") == "button":
            return True
    return False


def _is_content_text(text: str, *, username: str, display_name: str) -> bool:
    if len(text) <= MIN_TEXT_CHARS:
        return False
    if text in (username, display_name):
        return False
    for pattern in (_BARE_RELATIVE_TIME_RE, _BARE_COMPACT_TIME_RE, _BARE_NUMBER_RE, _BARE_DATE_RE):
        if pattern.match(text):
            return False
    if _UI_LABEL_RE.match(text):
        return False
    return not contains_any(text, CONTENT_NOISE_PHRASES)


def strip_trailing_remnants(text: str) -> str:
    value = (text or "").strip()
    while True:
        stripped = _TRAILING_REMNANT_RE.sub("", value).strip()
        if stripped == value:
            return value
        value = stripped


def _content(container: Tag, *, username: str, display_name: str) -> str:
    texts: list[str] = []
    for el in container.select(sel.TEXT_BLOCK):
        if _inside_interactive(el, names=("a",), role_button=True):
            continue
        text = _text(el)
        if _is_content_text(text, username=username, display_name=display_name):
            texts.append(text)
    return strip_trailing_remnants("\n\n".join(texts))[:MAX_CONTENT_CHARS]


def _stats(container: Tag) -> PostStats:
    likes = replies = reposts = 0
    for btn in container.select(sel.ACTION_CONTROL):
        text = btn.get_text()
        count = parse_stat_number(text)
        if _matches_label(text, LIKE_LABELS):
            likes = count
        elif _matches_label(text, REPLY_LABELS):
            replies = count
        elif _matches_label(text, REPOST_LABELS):
            reposts = count
    return PostStats(likes=likes, replies=replies, reposts=reposts)


def _is_avatar(img: Tag) -> bool:
    src = str(img.get("src") or "")
    alt = str(img.get("alt") or "")
    return "profile" in src or contains_any(alt, AVATAR_ALT_MARKERS, casefold=False)


def _images(container: Tag) -> list[str]:
    out: list[str] = []
    for img in container.select(sel.IMAGE):
        src = img.get("src")
        if isinstance(src, str) and src and not _is_avatar(img):
            out.append(src)
    return out


def _videos(container: Tag, media: MediaCapture | None) -> list[str]:
    """
    Video sources from the container's own markup. A video element with no
    usable source (e.g. a blob: stream) takes the next URL captured from the
    network for this task, if any.
    """
    out: list[str] = []
    unresolved = 0
    for video in container.select("video"):
        sources = [video.get("src")] + [s.get("src") for s in video.select("source")]
        usable = [s for s in sources if isinstance(s, str) and s.startswith("http")]
        if usable:
            out.extend(s for s in usable if s not in out)
        else:
            unresolved += 1
    if unresolved and media is not None:
        out.extend(u for u in media.drain(unresolved) if u not in out)
    return out


def _external_links(container: Tag) -> list[str]:
    out: list[str] = []
    for anchor in container.select(sel.EXTERNAL_LINK):
        href = anchor.get("href")
        if isinstance(href, str) and href and not is_platform_url(href):
            out.append(href)
    return out


def _quoted_post(container: Tag, own_id: str) -> PostRecord | None:
    # Only the first nested item is kept; further ones are dropped.
    for link in container.select(sel.POST_LINK):
        href = str(link.get("href") or "")
        ref = parse_post_href(href)
        if ref is None or ref[1] == own_id:
            continue

        username, quoted_id = ref
        content = ""
        sub = link.parent.parent if link.parent is not None else None
        if isinstance(sub, Tag):
            for el in sub.select(sel.QUOTED_TEXT_BLOCK):
                text = _text(el)
                if (
                    len(text) > MIN_TEXT_CHARS
                    and not _BARE_COMPACT_TIME_RE.match(text)
                    and not _QUOTED_DATE_RE.match(text)
                ):
                    content = text
                    break

        return PostRecord(
            id=quoted_id,
            url=absolute_url(href),
            author=Author(username=username, display_name=username),
            content=content,
        )
    return None


def parse_post_container(
    container: Tag,
    *,
    post_id: str,
    href: str,
    media: MediaCapture | None = None,
    now: NowFn | None = None,
) -> PostRecord:
    ref = parse_post_href(href)
    username = ref[0] if ref else UNKNOWN_USERNAME

    author_link = container.select_one(f'a[href="/@{username}"]')
    display_name = (_text(author_link) if author_link is not None else "") or username

    avatar = container.select_one(sel.POST_AVATAR)
    avatar_src = avatar.get("src") if avatar is not None else None

    time_el = container.select_one(sel.TIMESTAMP)
    raw_time = ""
    if time_el is not None:
        raw_time = str(time_el.get("datetime") or "") or _text(time_el)

    return PostRecord(
        id=post_id,
        url=absolute_url(href),
        author=Author(
            username=username,
            display_name=display_name,
            avatar_url=avatar_src if isinstance(avatar_src, str) and avatar_src else None,
            is_verified=container.select_one(sel.VERIFIED_BADGE) is not None,
        ),
        content=_content(container, username=username, display_name=display_name),
        timestamp=normalize_timestamp(raw_time, now=now),
        stats=_stats(container),
        images=tuple(_images(container)),
        videos=tuple(_videos(container, media)),
        links=tuple(_external_links(container)),
        quoted_post=_quoted_post(container, post_id),
    )


def extract_items(
    document: DocumentHandle,
    limit: int | None = None,
    *,
    media: MediaCapture | None = None,
    resolver: ContainerResolver = resolve_by_action_controls,
    max_depth: int = MAX_CONTAINER_DEPTH,
    now: NowFn | None = None,
    logger: Logger | None = None,
) -> list[PostRecord]:
    """
    Extract every post rendered in the document, in document order.

    Item links are collected first and de-duplicated by id. Each id is parsed
    from the container its link resolves to; a container yields one record,
    so a quoted item's link never becomes a second record of its host.
    A failure while parsing one item skips that item only.
    """
    log = logger or NullLogger()
    soup = _soup(document.html())

    posts: list[PostRecord] = []
    seen_ids: set[str] = set()
    used_containers: set[int] = set()

    for link in soup.select(sel.POST_LINK):
        if limit is not None and len(posts) >= limit:
            break

        href = str(link.get("href") or "")
        ref = parse_post_href(href)
        if ref is None:
            continue
        post_id = ref[1]
        if post_id in seen_ids:
            continue
        seen_ids.add(post_id)

        container = resolver(link, max_depth)
        if container is None or id(container) in used_containers:
            continue
        used_containers.add(id(container))

        try:
            posts.append(
                parse_post_container(container, post_id=post_id, href=href, media=media, now=now)
            )
        except Exception as exc:
            log.warning("item_extraction_failed", post_id=post_id, error=str(exc))

    return posts


def extract_single_post(
    document: DocumentHandle,
    post_id: str,
    post_url: str,
    *,
    media: MediaCapture | None = None,
    resolver: ContainerResolver = resolve_by_action_controls,
    max_depth: int = MAX_CONTAINER_DEPTH,
    now: NowFn | None = None,
) -> PostRecord | None:
    """
    Extract the main post of a post page: the container of the first item link.

    The record keeps the requested id and url rather than the rendered href.
    """
    soup = _soup(document.html())
    link = soup.select_one(sel.POST_LINK)
    if link is None:
        return None

    container = resolver(link, max_depth)
    if container is None:
        return None

    record = parse_post_container(
        container,
        post_id=post_id,
        href=str(link.get("href") or ""),
        media=media,
        now=now,
    )
    return replace(record, url=post_url)


def _display_name(region: Tag, username: str) -> str:
    for heading in region.select(sel.PROFILE_HEADING):
        text = _text(heading)
        if text and text != username and not text.startswith("@"):
            return text
    return username


def _bio(region: Tag, *, username: str, display_name: str) -> str | None:
    for el in region.select(sel.TEXT_BLOCK):
        if _inside_interactive(el, names=("a", "button"), role_button=False):
            continue
        text = _text(el)
        if (
            len(text) > MIN_BIO_CHARS
            and text not in (username, display_name)
            and not contains_any(text, PROFILE_BIO_EXCLUDE, casefold=False)
        ):
            return text
    return None


def _count_from(region: Tag, selector: str) -> int | None:
    link = region.select_one(selector)
    if link is None:
        return None
    return parse_compact_count(link.get_text())


def parse_profile_html(html: str, username: str) -> ProfileRecord | None:
    soup = _soup(html)
    if soup.body is None:
        return None

    region = soup.select_one(sel.PROFILE_REGION) or soup.body
    display_name = _display_name(region, username)

    avatar = region.select_one(sel.AVATAR)
    avatar_src = avatar.get("src") if avatar is not None else None

    return ProfileRecord(
        username=username,
        display_name=display_name,
        avatar_url=avatar_src if isinstance(avatar_src, str) and avatar_src else None,
        bio=_bio(region, username=username, display_name=display_name),
        is_verified=soup.select_one(sel.VERIFIED_BADGE) is not None,
        followers_count=_count_from(region, sel.FOLLOWERS_LINK),
        following_count=_count_from(region, sel.FOLLOWING_LINK),
    )


def extract_profile(document: DocumentHandle, username: str) -> ProfileRecord | None:
    return parse_profile_html(document.html(), username)


@dataclass(frozen=True)
class AboutResult:
    location: str | None = None
    joined_date: str | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.location is not None or self.joined_date is not None


def parse_about_text(text: str) -> AboutResult:
    """Read location and joined date out of the "About this profile" dialog text."""
    joined: str | None = None
    for pattern in _JOINED_PATTERNS:
        match = pattern.search(text or "")
        if match:
            # Drop the member-number suffix, e.g. "July 2023 · #2,697,767".
            joined = _JOINED_SUFFIX_RE.split(match.group(1))[0].strip()
            break

    location: str | None = None
    for pattern in _LOCATION_PATTERNS:
        match = pattern.search(text or "")
        if match:
            location = match.group(1).strip()
            break

    return AboutResult(location=location, joined_date=joined)


def _find_profile_menu_index(controls: list[Tag]) -> int:
    more = set(all_phrases(MORE_MENU_LABELS))
    follow = set(all_phrases(FOLLOW_LABELS))

    last_more = -1
    for i, btn in enumerate(controls):
        text = _text(btn)
        svg = btn.find("svg")
        aria = str(svg.get("aria-label") or "") if svg is not None else ""
        if aria in more and text in more:
            last_more = i
        if text in follow and last_more >= 0:
            return last_more

    with_icon = [
        i for i, btn in enumerate(controls)
        if any(
            str(svg.get("aria-label") or "") in more for svg in btn.find_all("svg")
        )
    ]
    # The first More button belongs to the site header.
    return with_icon[1] if len(with_icon) > 1 else -1


def fetch_profile_about(
    document: DocumentHandle,
    *,
    menu_wait_ms: int = 800,
    dialog_wait_ms: int = 2000,
) -> AboutResult:
    """
    Open the profile's More menu, pick "About this profile" and read the dialog.

    Usually needs an authenticated session. The dialog is closed before returning.
    """
    controls = _soup(document.html()).select(sel.ACTION_CONTROL)
    menu_index = _find_profile_menu_index(controls)
    if menu_index < 0:
        return AboutResult(error="Profile menu button not found on page")

    document.click(sel.ACTION_CONTROL, menu_index)
    document.wait(menu_wait_ms)

    controls = _soup(document.html()).select(sel.ACTION_CONTROL)
    about_index = next(
        (
            i for i, btn in enumerate(controls)
            if contains_any(_text(btn), ABOUT_PROFILE_LABELS, casefold=False)
        ),
        -1,
    )
    if about_index < 0:
        document.press("Escape")
        return AboutResult(
            error="About option not found. Enable use_cookies and provide storage state."
        )

    document.click(sel.ACTION_CONTROL, about_index)
    document.wait(dialog_wait_ms)

    result = AboutResult()
    for dialog in _soup(document.html()).select(sel.DIALOG):
        parsed = parse_about_text(dialog.get_text())
        if parsed.found:
            result = AboutResult(
                location=parsed.location or result.location,
                joined_date=parsed.joined_date or result.joined_date,
            )

    document.press("Escape")

    if not result.found:
        return AboutResult(error="Could not extract data from About dialog")
    return result
