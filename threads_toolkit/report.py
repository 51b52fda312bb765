from __future__ import annotations

from typing import Any, Mapping

from .batch import BatchResult

STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"
STATUS_EMPTY = "empty"

_RECOMMENDATIONS: dict[str, list[str]] = {
    "RateLimitError": [
        "Increase retry.request_delay_ms or retry.backoff_delay_ms.",
        "Lower batch.concurrency so fewer sessions hit the platform at once.",
        "Route traffic through a different browser.proxy_server.",
    ],
    "LoginWallError": [
        "Enable browser.use_cookies and point browser.storage_state_path at a logged-in storage state.",
        "Try a different browser.proxy_server or reduce request frequency.",
    ],
    "PlatformError": [
        "The platform returned an error page; retry later or with fewer concurrent tasks.",
    ],
    "NotFoundError": [
        "Check inputs.usernames and inputs.post_urls; the platform reports them as missing.",
    ],
    "InvalidTaskError": [
        "Fix inputs.post_urls; expected threads.com or threads.net links containing /post/<id>.",
    ],
    "ExtractionError": [
        "The page loaded but could not be parsed; the selectors may need recalibration.",
    ],
}

_FALLBACK_RECOMMENDATION = "Inspect run.log (batch_task_failed events) for the full traceback."


def _records_emitted(result: BatchResult) -> int:
    total = 0
    for _name, outcome in result.outcomes:
        emitted = getattr(outcome, "emitted", None)
        if isinstance(emitted, int):
            total += emitted
    return total


def batch_status(result: BatchResult) -> str:
    if result.total == 0:
        return STATUS_EMPTY
    if result.fail == 0:
        return STATUS_COMPLETED
    if result.success == 0:
        return STATUS_FAILED
    return STATUS_PARTIAL


def build_batch_report(result: BatchResult) -> dict[str, Any]:
    status = batch_status(result)
    records = _records_emitted(result)

    details: dict[str, Any] = {
        "total": int(result.total),
        "success": int(result.success),
        "fail": int(result.fail),
        "records_emitted": int(records),
    }
    failures = [
        {"task": f.task_name, "type": f.error_type, "message": f.message}
        for f in result.errors
    ]

    if status == STATUS_EMPTY:
        summary = "No tasks were scheduled."
    elif status == STATUS_COMPLETED:
        summary = f"All {result.total} tasks completed ({records} records emitted)."
    elif status == STATUS_FAILED:
        summary = f"All {result.total} tasks failed."
    else:
        summary = (
            f"{result.success}/{result.total} tasks completed, {result.fail} failed "
            f"({records} records emitted)."
        )

    recommendations: list[str] = []
    if status == STATUS_EMPTY:
        recommendations.append(
            "Add inputs.keywords, inputs.usernames, inputs.tags or inputs.post_urls."
        )
    for f in result.errors:
        for rec in _RECOMMENDATIONS.get(f.error_type, [_FALLBACK_RECOMMENDATION]):
            if rec not in recommendations:
                recommendations.append(rec)

    return {
        "status": status,
        "summary": summary,
        "details": details,
        "failures": failures,
        "recommendations": recommendations,
    }


def format_batch_report(report: Mapping[str, Any]) -> str:
    status = str(report.get("status") or "").strip() or "unknown"
    summary = str(report.get("summary") or "").strip() or f"Batch finished ({status})."

    lines: list[str] = [summary]

    failures = report.get("failures")
    if isinstance(failures, list) and failures:
        lines.append("Failures:")
        for f in failures:
            if not isinstance(f, Mapping):
                continue
            task = str(f.get("task") or "").strip() or "?"
            kind = str(f.get("type") or "").strip() or "Error"
            msg = str(f.get("message") or "").strip()
            lines.append(f"- {task}: {kind}: {msg}" if msg else f"- {task}: {kind}")

    recs = report.get("recommendations")
    if isinstance(recs, list) and recs:
        lines.append("Recommendations:")
        for r in recs:
            t = str(r or "").strip()
            if t:
                lines.append(f"- {t}")

    return "\n".join(lines)
