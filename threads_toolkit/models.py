from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Union

from .phrases import PLATFORM_BASE_URL

UNKNOWN_USERNAME = "unknown"


class Fetch(Enum):
    """Marker for a field that was never fetched (as opposed to fetched-but-null)."""

    UNFETCHED = "unfetched"


UNFETCHED = Fetch.UNFETCHED

OptionalFetched = Union[str, None, Fetch]


def profile_url_for(username: str) -> str:
    name = (username or "").strip()
    if not name or name == UNKNOWN_USERNAME:
        return ""
    return f"{PLATFORM_BASE_URL}/@{name}"


@dataclass(frozen=True)
class Author:
    username: str
    display_name: str = ""
    avatar_url: str | None = None
    is_verified: bool = False

    @property
    def profile_url(self) -> str:
        return profile_url_for(self.username)

    def to_output(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "username": self.username,
            "displayName": self.display_name or self.username,
            "profileUrl": self.profile_url,
        }
        if self.avatar_url:
            out["avatarUrl"] = self.avatar_url
        out["isVerified"] = bool(self.is_verified)
        return out


@dataclass(frozen=True)
class PostStats:
    likes: int = 0
    replies: int = 0
    reposts: int = 0

    def __post_init__(self) -> None:
        for name in ("likes", "replies", "reposts"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")


@dataclass(frozen=True)
class PostRecord:
    """One extracted post. `quoted_post` nests at most one level."""

    id: str
    url: str
    author: Author
    content: str = ""
    timestamp: str = ""
    stats: PostStats = field(default_factory=PostStats)
    images: Sequence[str] = ()
    videos: Sequence[str] = ()
    links: Sequence[str] = ()
    quoted_post: "PostRecord | None" = None

    def __post_init__(self) -> None:
        if self.quoted_post is not None and self.quoted_post.quoted_post is not None:
            raise ValueError("quoted posts may not nest more than one level")

    def to_output(self, *, source: str | None = None, **extra: Any) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "author": self.author.to_output(),
            "content": self.content,
            "timestamp": self.timestamp,
            "stats": {
                "likes": self.stats.likes,
                "replies": self.stats.replies,
                "reposts": self.stats.reposts,
            },
        }
        if self.images:
            out["images"] = list(self.images)
        if self.videos:
            out["videos"] = list(self.videos)
        if self.links:
            out["links"] = list(self.links)
        if self.quoted_post is not None:
            out["quotedPost"] = self.quoted_post.to_output()
        if source:
            out["source"] = source
        for key, value in extra.items():
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class ProfileRecord:
    username: str
    display_name: str = ""
    avatar_url: str | None = None
    bio: str | None = None
    is_verified: bool = False
    followers_count: int | None = None
    following_count: int | None = None
    posts_count: int | None = None
    location: OptionalFetched = UNFETCHED
    joined_date: OptionalFetched = UNFETCHED
    partial: bool = False
    missing_fields: Sequence[str] = ()

    @property
    def profile_url(self) -> str:
        return profile_url_for(self.username)

    def to_output(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "username": self.username,
            "displayName": self.display_name,
            "profileUrl": self.profile_url,
        }
        if self.avatar_url:
            out["avatarUrl"] = self.avatar_url
        if self.bio:
            out["bio"] = self.bio
        out["isVerified"] = bool(self.is_verified)
        for key, value in (
            ("followersCount", self.followers_count),
            ("followingCount", self.following_count),
            ("postsCount", self.posts_count),
        ):
            if value is not None:
                out[key] = value
        if self.location is not UNFETCHED:
            out["location"] = self.location
        if self.joined_date is not UNFETCHED:
            out["joinedDate"] = self.joined_date
        out["partial"] = bool(self.partial)
        out["missingFields"] = list(self.missing_fields)
        out["type"] = "profile"
        out["source"] = "profile"
        return out


@dataclass(frozen=True)
class PageState:
    """Fresh snapshot of what a loaded document looks like. Never persisted."""

    is_login_wall: bool = False
    is_error_page: bool = False
    is_rate_limited: bool = False
    is_empty: bool = False
    has_main_content: bool = False
    post_link_count: int = 0
    error_message: str = ""

    def to_output(self) -> dict[str, Any]:
        return {
            "isLoginWall": self.is_login_wall,
            "isErrorPage": self.is_error_page,
            "isRateLimited": self.is_rate_limited,
            "isEmpty": self.is_empty,
            "hasMainContent": self.has_main_content,
            "postLinkCount": self.post_link_count,
            "errorMessage": self.error_message,
        }
