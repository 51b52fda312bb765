from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping
from urllib.parse import urlencode

from . import selectors as sel
from .classifier import classify, is_not_found, raise_for_page_state
from .config_schema import AppConfig
from .document import DocumentHandle, MediaCapture
from .errors import (
    ExtractionError,
    InvalidTaskError,
    NotFoundError,
    PlatformError,
    RecordRejected,
    SinkError,
)
from .extractor import AboutResult, extract_items, extract_profile, extract_single_post, fetch_profile_about
from .models import PostRecord
from .normalize import NowFn, extract_post_id, normalize_post_url
from .pagination import ClockFn, paginate
from .phrases import PLATFORM_BASE_URL
from .retry import SleepFn, apply_request_delay
from .run_log import Logger
from .sink import RecordSink
from .validator import mark_completeness, require_valid_post, validate_post

SOURCE_SEARCH = "search"
SOURCE_HASHTAG = "hashtag"
SOURCE_PROFILE_POSTS = "profile_posts"
SOURCE_REPLY = "reply"


@dataclass(frozen=True)
class ActionContext:
    """Everything one task owns. Nothing in here is shared with another task."""

    document: DocumentHandle
    media: MediaCapture
    sink: RecordSink
    config: AppConfig
    logger: Logger
    sleep_fn: SleepFn | None = None
    clock: ClockFn = time.monotonic
    now: NowFn | None = None


@dataclass(frozen=True)
class TaskOutcome:
    action: str
    target: str
    emitted: int = 0
    extracted: int = 0
    skip_reasons: Mapping[str, int] = field(default_factory=dict)
    stop_reason: str | None = None
    empty: bool = False


def build_search_url(keyword: str, filter: str = "recent") -> str:
    params = {"q": keyword, "serp_type": "default"}
    if filter == "top":
        params["filter"] = "top"
    return f"{PLATFORM_BASE_URL}/search?{urlencode(params)}"


def build_hashtag_url(tag: str, filter: str = "recent") -> str:
    return build_search_url(f"#{(tag or '').strip().lstrip('#')}", filter)


def build_profile_url(username: str) -> str:
    return f"{PLATFORM_BASE_URL}/@{(username or '').strip().lstrip('@')}"


def _navigate(ctx: ActionContext, url: str) -> None:
    delay = apply_request_delay(ctx.config.retry, sleep_fn=ctx.sleep_fn)
    ctx.logger.info("navigate", url=url, request_delay_seconds=delay)
    ctx.document.goto(url, timeout_ms=ctx.config.browser.navigation_timeout_ms)


def _wait_for(ctx: ActionContext, selector: str) -> bool:
    found = ctx.document.wait_for_selector(
        selector, timeout_ms=ctx.config.browser.content_timeout_ms
    )
    if found:
        # Give the network a moment so video responses reach the capture arena.
        ctx.document.wait(ctx.config.browser.media_settle_ms)
    return found


def _emit_posts(
    ctx: ActionContext,
    posts: Iterable[PostRecord],
    *,
    source: str,
    limit: int | None = None,
    exclude_ids: Iterable[str] = (),
    **extra: Any,
) -> tuple[int, Counter[str]]:
    seen: set[str] = set(exclude_ids)
    skipped: Counter[str] = Counter()
    emitted = 0

    for post in posts:
        if limit is not None and emitted >= limit:
            break
        if post.id in seen:
            continue

        validation = validate_post(post)
        if not validation.valid:
            skipped[validation.reason or "unknown"] += 1
            continue

        seen.add(post.id)
        ctx.sink.push(post.to_output(source=source, **extra))
        emitted += 1

    if skipped:
        ctx.logger.info("posts_skipped", source=source, total=sum(skipped.values()), **skipped)
    return emitted, skipped


def _run_feed(ctx: ActionContext, *, action: str, target: str, url: str, source: str) -> TaskOutcome:
    max_items = ctx.config.inputs.max_items
    _navigate(ctx, url)

    if not _wait_for(ctx, sel.POST_LINK):
        state = classify(ctx.document)
        raise_for_page_state(state, action)
        if state.is_empty:
            ctx.logger.warning(
                "no_items_found",
                reason="page empty or blocked",
                has_main_content=state.has_main_content,
            )
        else:
            ctx.logger.info("no_items_found", reason="no results")
        return TaskOutcome(action=action, target=target, empty=True)

    scroll = paginate(
        ctx.document, max_items, ctx.config.scroll, logger=ctx.logger, clock=ctx.clock
    )
    posts = extract_items(ctx.document, max_items, media=ctx.media, now=ctx.now, logger=ctx.logger)
    ctx.logger.info("items_extracted", count=len(posts))

    emitted, skipped = _emit_posts(ctx, posts, source=source, limit=max_items)
    ctx.logger.info(f"{action}_completed", emitted=emitted)
    return TaskOutcome(
        action=action,
        target=target,
        emitted=emitted,
        extracted=len(posts),
        skip_reasons=dict(skipped),
        stop_reason=scroll.stop_reason,
    )


def run_search(ctx: ActionContext, keyword: str) -> TaskOutcome:
    url = build_search_url(keyword, ctx.config.inputs.filter)
    return _run_feed(ctx, action="search", target=keyword, url=url, source=SOURCE_SEARCH)


def run_hashtag(ctx: ActionContext, tag: str) -> TaskOutcome:
    normalized = (tag or "").strip().lstrip("#")
    url = build_hashtag_url(normalized, ctx.config.inputs.filter)
    return _run_feed(ctx, action="hashtag", target=normalized, url=url, source=SOURCE_HASHTAG)


def _raise_for_missing_content(ctx: ActionContext, context: str, what: str) -> None:
    state = classify(ctx.document)
    raise_for_page_state(state, context)
    if is_not_found(ctx.document):
        raise NotFoundError(f"{context.capitalize()} not found: {what}")
    raise PlatformError(f"Failed to load {context} page for {what}")


def _fetch_about(ctx: ActionContext) -> AboutResult:
    try:
        about = fetch_profile_about(ctx.document)
    except Exception as exc:
        ctx.logger.warning("profile_about_failed", error=str(exc))
        return AboutResult(error=str(exc))

    if about.error:
        ctx.logger.warning("profile_about_unavailable", reason=about.error)
    else:
        ctx.logger.info(
            "profile_about_extracted", location=about.location, joined_date=about.joined_date
        )
    return about


def run_profile(ctx: ActionContext, username: str) -> TaskOutcome:
    name = (username or "").strip().lstrip("@")
    max_items = ctx.config.inputs.max_items
    _navigate(ctx, build_profile_url(name))

    if not _wait_for(ctx, sel.PROFILE_HEADING):
        _raise_for_missing_content(ctx, "profile", f"@{name}")

    profile = extract_profile(ctx.document, name)
    if profile is None:
        raise ExtractionError(f"Failed to extract profile data for @{name}")

    # Fetched-but-unavailable is stored as None, distinct from never fetched.
    about = _fetch_about(ctx)
    profile = replace(profile, location=about.location, joined_date=about.joined_date)

    try:
        profile = mark_completeness(profile)
    except RecordRejected as e:
        ctx.logger.warning("profile_rejected", reason=e.reason)
        return TaskOutcome(action="profile", target=name, skip_reasons={e.reason: 1})

    if profile.partial:
        ctx.logger.info("profile_partial", missing=list(profile.missing_fields))
    ctx.sink.push(profile.to_output())
    emitted = 1

    stop_reason = None
    skipped: Counter[str] = Counter()
    if ctx.config.inputs.include_posts:
        try:
            scroll = paginate(
                ctx.document, max_items, ctx.config.scroll, logger=ctx.logger, clock=ctx.clock
            )
            stop_reason = scroll.stop_reason
            posts = extract_items(
                ctx.document, max_items, media=ctx.media, now=ctx.now, logger=ctx.logger
            )
            count, skipped = _emit_posts(
                ctx, posts, source=SOURCE_PROFILE_POSTS, profile=profile.username
            )
            emitted += count
            ctx.logger.info("profile_posts_saved", count=count, total=len(posts), max=max_items)
        except SinkError:
            raise
        except Exception as exc:
            ctx.logger.warning("profile_posts_failed", error=str(exc))

    return TaskOutcome(
        action="profile",
        target=name,
        emitted=emitted,
        skip_reasons=dict(skipped),
        stop_reason=stop_reason,
    )


def run_post(ctx: ActionContext, post_url: str) -> TaskOutcome:
    url = normalize_post_url(post_url)
    if url is None:
        raise InvalidTaskError(f"Invalid post URL: {post_url}")
    post_id = extract_post_id(url)
    if post_id is None:
        raise InvalidTaskError(f"Could not extract post ID from URL: {post_url}")

    _navigate(ctx, url)
    if not _wait_for(ctx, sel.POST_LINK):
        _raise_for_missing_content(ctx, "post", url)

    main = extract_single_post(ctx.document, post_id, url, media=ctx.media, now=ctx.now)
    if main is None:
        raise ExtractionError(f"Failed to extract post data from: {url}")

    try:
        main = require_valid_post(main)
    except RecordRejected as e:
        ctx.logger.warning("post_rejected", reason=e.reason, post_id=main.id)
        return TaskOutcome(action="post", target=url, extracted=1, skip_reasons={e.reason: 1})

    ctx.sink.push(main.to_output())
    emitted = 1

    max_replies = ctx.config.inputs.max_items
    stop_reason = None
    skipped: Counter[str] = Counter()
    try:
        scroll = paginate(
            ctx.document, max_replies, ctx.config.scroll, logger=ctx.logger, clock=ctx.clock
        )
        stop_reason = scroll.stop_reason
        replies = extract_items(
            ctx.document, max_replies, media=ctx.media, now=ctx.now, logger=ctx.logger
        )
        count, skipped = _emit_posts(
            ctx, replies, source=SOURCE_REPLY, exclude_ids=(main.id,), parentId=main.id
        )
        emitted += count
        ctx.logger.info("replies_saved", count=count, total=len(replies), max=max_replies)
    except SinkError:
        raise
    except Exception as exc:
        ctx.logger.warning("replies_failed", error=str(exc))

    return TaskOutcome(
        action="post",
        target=url,
        emitted=emitted,
        extracted=1,
        skip_reasons=dict(skipped),
        stop_reason=stop_reason,
    )
