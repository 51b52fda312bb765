from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _normalize_term_list(values: list[str], *, strip_prefix: str | None = None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        term = (item or "").strip()
        if strip_prefix and term.startswith(strip_prefix):
            term = term[len(strip_prefix) :].strip()
        if not term:
            continue
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(term)

    return out


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]


class InputsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    keywords: list[str] = Field(default_factory=list)
    usernames: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    post_urls: list[str] = Field(default_factory=list)

    max_items: PositiveInt = 50
    filter: Literal["recent", "top"] = "recent"
    include_posts: bool = True

    @field_validator("keywords", "post_urls")
    @classmethod
    def _normalize_terms(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v)

    @field_validator("usernames")
    @classmethod
    def _normalize_usernames(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v, strip_prefix="@")

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v, strip_prefix="#")


class RetryPolicyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    request_delay_ms: NonNegativeInt = 1000
    max_retries: NonNegativeInt = 3
    backoff_delay_ms: NonNegativeInt = 5000
    backoff_multiplier: NonNegativeFloat = 2.0


class ScrollConfig(BaseModel):
    """
    Pagination limits. These are empirically tuned against live traffic and
    should be recalibrated when the platform changes how much it shows.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_no_progress: PositiveInt = 4
    max_attempts_cap: PositiveInt = 20
    items_per_attempt: PositiveInt = 5
    extra_attempts: NonNegativeInt = 5
    global_timeout_seconds: NonNegativeFloat = 45.0
    overshoot_factor: float = Field(1.5, ge=1.0)
    sub_steps: PositiveInt = 3
    step_fraction: float = Field(0.8, gt=0.0, le=2.0)
    step_pause_ms: NonNegativeInt = 300
    spinner_timeout_ms: NonNegativeInt = 10000
    settle_delay_ms: NonNegativeInt = 2000


class BrowserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    headless: bool = True
    navigation_timeout_ms: PositiveInt = 60000
    content_timeout_ms: PositiveInt = 15000
    media_settle_ms: NonNegativeInt = 2000
    block_heavy_resources: bool = True
    use_cookies: bool = False
    storage_state_path: str | None = None
    proxy_server: str | None = None


class BatchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    concurrency: PositiveInt = 2


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    sink: Literal["jsonl", "apify"] = "jsonl"
    jsonl_path: str | None = None
    apify_token_env: str = "APIFY_TOKEN"
    apify_dataset_id: str | None = None

    @field_validator("apify_token_env")
    @classmethod
    def _token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    inputs: InputsConfig = Field(default_factory=InputsConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    scroll: ScrollConfig = Field(default_factory=ScrollConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
