from __future__ import annotations

import re
from typing import Iterable, Mapping, Sequence

PhraseTable = Mapping[str, Sequence[str]]

PLATFORM_HOSTS: tuple[str, ...] = ("threads.com", "threads.net")
PLATFORM_BASE_URL = "https://www.threads.com"

RATE_LIMIT_PHRASES: PhraseTable = {
    "en": (
        "rate limit",
        "too many requests",
        "try again later",
        "slow down",
        "temporarily blocked",
        "wait a few minutes",
    ),
    "zh-Hant": ("請稍後再試", "暫時被封鎖", "請等待幾分鐘"),
    "zh-Hans": ("请稍后再试", "暂时被封锁", "请等待几分钟"),
    "ja": ("しばらくしてからもう一度お試しください",),
    "ko": ("나중에 다시 시도",),
}

ERROR_PHRASES: PhraseTable = {
    "en": ("Something went wrong", "Try again", "blocked", "unavailable"),
    "zh-Hant": ("出了點問題",),
    "zh-Hans": ("出了点问题",),
    "ja": ("問題が発生しました",),
    "ko": ("문제가 발생했습니다",),
}

LOGIN_PHRASES: PhraseTable = {
    "en": ("Log in",),
    "zh-Hant": ("登入",),
    "ja": ("ログイン",),
    "ko": ("로그인",),
}

NOT_FOUND_PHRASES: PhraseTable = {
    "en": ("Page not found",),
    "zh-Hant": ("找不到這個頁面",),
    "ja": ("ページが見つかりません",),
    "ko": ("페이지를 찾을 수 없습니다",),
}

# Action-control labels. Native-script labels match as substrings; English
# labels match case-insensitively.
LIKE_LABELS: PhraseTable = {"zh-Hant": ("讚",), "en": ("like",)}
REPLY_LABELS: PhraseTable = {"zh-Hant": ("留言", "回覆"), "en": ("comment", "reply")}
REPOST_LABELS: PhraseTable = {
    "zh-Hant": ("轉發", "轉貼", "引用"),
    "en": ("repost", "quote"),
}

# Controls that identify a post container; English variants must prefix the text.
CONTAINER_CONTROL_LABELS: PhraseTable = {
    "zh-Hant": ("讚", "留言", "轉發"),
    "en": ("Like", "Comment", "Repost"),
}

UI_LABELS: PhraseTable = {
    "zh-Hant": ("讚", "留言", "轉發", "分享", "翻譯"),
    "en": ("Like", "Comment", "Repost", "Share", "Translate"),
}

TRAILING_UI_REMNANTS: PhraseTable = {
    "en": ("Learn more", "Translate"),
    "zh-Hant": ("了解更多", "翻譯"),
}

CONTENT_NOISE_PHRASES: PhraseTable = {
    "en": ("trouble playing this video",),
}

PROFILE_BIO_EXCLUDE: PhraseTable = {
    "zh-Hant": ("位粉絲", "登入"),
    "en": ("followers", "Log in"),
}

AVATAR_ALT_MARKERS: PhraseTable = {
    "zh-Hant": ("大頭貼",),
    "en": ("profile", "avatar"),
}

JUST_NOW_PHRASES: PhraseTable = {"en": ("just now", "now"), "zh-Hant": ("剛剛",)}

MORE_MENU_LABELS: PhraseTable = {"en": ("More",)}
FOLLOW_LABELS: PhraseTable = {
    "en": ("Follow", "Following"),
    "zh-Hant": ("追蹤", "正在追蹤"),
}
ABOUT_PROFILE_LABELS: PhraseTable = {
    "en": ("About this profile",),
    "zh-Hant": ("關於此個人檔案",),
}


def all_phrases(table: PhraseTable) -> tuple[str, ...]:
    out: list[str] = []
    for phrases in table.values():
        out.extend(phrases)
    return tuple(out)


def first_match(text: str, table: PhraseTable, *, casefold: bool = True) -> str | None:
    """Return the first phrase of `table` contained in `text`, if any."""
    haystack = (text or "").casefold() if casefold else (text or "")
    for phrase in all_phrases(table):
        needle = phrase.casefold() if casefold else phrase
        if needle and needle in haystack:
            return phrase
    return None


def contains_any(text: str, table: PhraseTable, *, casefold: bool = True) -> bool:
    return first_match(text, table, casefold=casefold) is not None


def alternation(phrases: Iterable[str]) -> str:
    """Regex alternation of literal phrases, longest first."""
    items = sorted({p for p in phrases if p}, key=len, reverse=True)
    return "|".join(re.escape(p) for p in items)
