from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urlsplit

from .phrases import JUST_NOW_PHRASES, PLATFORM_BASE_URL, PLATFORM_HOSTS, contains_any

NowFn = Callable[[], datetime]

_STAT_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?[KkMm]?")
_COMPACT_COUNT_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(萬|万|[KkMm])?")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_LATIN_RELATIVE_RE = re.compile(r"(\d+)\s*([smhdw])", re.IGNORECASE)
_CJK_RELATIVE_RE = re.compile(r"(\d+)\s*(秒鐘?|分鐘?|小時|小时|時|天|日|週|周|星期|礼拜|月)\s*前?")
_POST_PATH_RE = re.compile(r"/@([^/?#]+)/post/([A-Za-z0-9_-]+)")
_POST_ID_RE = re.compile(r"/post/([A-Za-z0-9_-]+)")

_LATIN_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

# Checked in order; the first unit whose marker occurs in the matched unit text wins.
_CJK_UNITS: tuple[tuple[tuple[str, ...], timedelta], ...] = (
    (("秒",), timedelta(seconds=1)),
    (("分",), timedelta(minutes=1)),
    (("小時", "小时", "時"), timedelta(hours=1)),
    (("天", "日"), timedelta(days=1)),
    (("週", "周", "星期", "礼拜"), timedelta(weeks=1)),
    (("月",), timedelta(days=30)),
)

_MULTIPLIERS = {
    "k": 1_000,
    "m": 1_000_000,
    "萬": 10_000,
    "万": 10_000,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_stat_number(text: str) -> int:
    """
    Parse the first compact number in `text`.

    "讚 2,049" -> 2049, "1.5K" -> 1500, "2M" -> 2000000, no digits -> 0.
    """
    match = _STAT_NUMBER_RE.search(text or "")
    if not match:
        return 0

    raw = match.group(0).replace(",", "")
    suffix = raw[-1].casefold()
    if suffix in ("k", "m"):
        return int(round(float(raw[:-1]) * _MULTIPLIERS[suffix]))

    try:
        return int(float(raw))
    except ValueError:
        return 0


def parse_compact_count(text: str) -> int | None:
    """
    Parse follower-style counts, including the CJK ten-thousand unit.

    "541.7 萬位粉絲" -> 5417000, "1,234 followers" -> 1234, "5.4M followers" -> 5400000.
    Returns None when the text holds no number.
    """
    match = _COMPACT_COUNT_RE.search(text or "")
    if not match:
        return None

    value = float(match.group(1).replace(",", ""))
    unit = match.group(2)
    if unit:
        value *= _MULTIPLIERS[unit.casefold()]
    return int(round(value))


def parse_relative_time(text: str, *, now: NowFn | None = None) -> str:
    """
    Convert platform relative-time labels to an ISO-8601 UTC timestamp.

    Returns "" for empty or unrecognized input; callers treat that as missing.
    """
    raw = (text or "").strip()
    if not raw:
        return ""

    current = (now or _utc_now)()

    if contains_any(raw, JUST_NOW_PHRASES):
        return _iso(current)

    latin = _LATIN_RELATIVE_RE.search(raw)
    if latin:
        amount = int(latin.group(1))
        return _iso(current - amount * _LATIN_UNITS[latin.group(2).casefold()])

    cjk = _CJK_RELATIVE_RE.search(raw)
    if cjk:
        amount = int(cjk.group(1))
        unit = cjk.group(2)
        for markers, step in _CJK_UNITS:
            if any(m in unit for m in markers):
                return _iso(current - amount * step)

    return ""


def normalize_timestamp(value: str, *, now: NowFn | None = None) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if _ISO_DATE_RE.match(raw):
        return raw
    return parse_relative_time(raw, now=now)


def parse_post_href(href: str) -> tuple[str, str] | None:
    """Return (username, post_id) embedded in an item link, if any."""
    match = _POST_PATH_RE.search(href or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def extract_post_id(url: str) -> str | None:
    match = _POST_ID_RE.search(url or "")
    return match.group(1) if match else None


def absolute_url(href: str) -> str:
    value = (href or "").strip()
    if value.startswith("http"):
        return value
    if not value.startswith("/"):
        value = "/" + value
    return f"{PLATFORM_BASE_URL}{value}"


def is_platform_url(url: str) -> bool:
    try:
        host = (urlsplit(url).hostname or "").casefold()
    except ValueError:
        return False
    return any(host == h or host.endswith("." + h) for h in PLATFORM_HOSTS)


def normalize_post_url(url: str) -> str | None:
    """
    Accept threads.net / threads.com post URLs with or without a scheme.

    The host is rewritten to threads.com; anything else yields None.
    """
    value = (url or "").strip()
    if not value:
        return None
    if "threads.net" not in value and "threads.com" not in value:
        return None
    if not value.startswith("http"):
        value = "https://" + value
    return value.replace("threads.net", "threads.com")
