from __future__ import annotations

from apify_client.errors import ApifyApiError


def _extract_status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "statusCode", "status", "http_status", "httpStatusCode"):
        val = getattr(exc, attr, None)
        if val is None:
            continue
        try:
            return int(val)
        except (TypeError, ValueError):
            continue
    return None


def _looks_like_timeout_or_connection(exc: BaseException) -> bool:
    name = type(exc).__name__.casefold()
    mod = type(exc).__module__.casefold()
    return any(
        marker in name or marker in mod for marker in ("timeout", "connection", "connect")
    )


def is_retryable_apify_exception(exc: BaseException) -> tuple[bool, str | None]:
    """
    Retry dataset pushes on:
    - network/connection errors
    - HTTP 500+
    - HTTP 429
    """
    if isinstance(exc, ApifyApiError):
        code = _extract_status_code(exc)
        reason = f"http_{code}" if code is not None else "http_status"
        return code == 429 or (code is not None and code >= 500), reason

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True, "network_error"

    if _looks_like_timeout_or_connection(exc):
        return True, "network_error"

    return False, None
