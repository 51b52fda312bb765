from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Sequence

from .errors import RecordRejected
from .models import UNFETCHED, UNKNOWN_USERNAME, PostRecord, ProfileRecord

MIN_CONTENT_CHARS = 3


@dataclass(frozen=True)
class PostValidation:
    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class ProfileValidation:
    valid: bool
    reason: str | None = None
    partial: bool = False
    missing: Sequence[str] = ()


def validate_post(post: PostRecord) -> PostValidation:
    """
    Reject posts missing any essential field.

    Posts are dropped outright rather than emitted half-empty.
    """
    content = post.content or ""
    if len(content) < MIN_CONTENT_CHARS:
        return PostValidation(valid=False, reason="noContent")

    username = (post.author.username or "").strip()
    if not username or username == UNKNOWN_USERNAME:
        return PostValidation(valid=False, reason="noAuthor")

    if not post.timestamp:
        return PostValidation(valid=False, reason="noTimestamp")

    return PostValidation(valid=True)


def require_valid_post(post: PostRecord) -> PostRecord:
    result = validate_post(post)
    if not result.valid:
        raise RecordRejected(result.reason or "unknown")
    return post


def validate_profile(profile: ProfileRecord) -> ProfileValidation:
    """
    Only the username is required; everything else is reported as missing.

    location / joinedDate count as missing when null or never fetched, but an
    empty string is a value.
    """
    if not (profile.username or "").strip():
        return ProfileValidation(valid=False, reason="noUsername")

    missing: list[str] = []
    if not profile.display_name:
        missing.append("displayName")
    if not profile.avatar_url:
        missing.append("avatarUrl")
    if profile.followers_count is None:
        missing.append("followersCount")
    if not profile.bio:
        missing.append("bio")
    if profile.location is None or profile.location is UNFETCHED:
        missing.append("location")
    if profile.joined_date is None or profile.joined_date is UNFETCHED:
        missing.append("joinedDate")

    return ProfileValidation(valid=True, partial=bool(missing), missing=tuple(missing))


def mark_completeness(profile: ProfileRecord) -> ProfileRecord:
    """Validate and stamp `partial` / `missing_fields`. Raises RecordRejected when invalid."""
    result = validate_profile(profile)
    if not result.valid:
        raise RecordRejected(result.reason or "unknown")
    return dataclasses.replace(
        profile,
        partial=result.partial,
        missing_fields=tuple(result.missing),
    )
