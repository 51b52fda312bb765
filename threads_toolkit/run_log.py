from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Protocol, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class Logger(Protocol):
    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None: ...

    def exception(
        self, event: str, *, exc: BaseException, url: str | None = None, **data: Any
    ) -> None: ...

    def bind(self, **context: Any) -> "Logger": ...


class _JsonlFile:
    """Append-only JSONL file shared by a logger and its bound children."""

    def __init__(self, path: Path, *, overwrite: bool) -> None:
        self._path = path
        self._overwrite = overwrite
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False

    def ensure_open(self) -> None:
        with self._lock:
            if self._fp is not None:
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"
            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._opened = True

    def write(self, record: dict[str, Any]) -> None:
        self.ensure_open()
        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None


class RunLogger:
    """
    JSONL logger for extraction runs.

    Each log line is a single JSON object. Worker threads share one file;
    `bind()` returns a child whose records carry extra context such as the task name.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        overwrite: bool = True,
        run_id: str | None = None,
        session_id: str | None = None,
        _file: _JsonlFile | None = None,
        _context: dict[str, Any] | None = None,
    ) -> None:
        self._file = _file or _JsonlFile(Path(path), overwrite=bool(overwrite))
        self._path = Path(path)
        self._run_id = (run_id or "").strip() or None
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._context = dict(_context or {})

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        run_id: str | None = None,
        session_id: str | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, run_id=run_id, session_id=session_id)
        logger._file.ensure_open()
        return logger

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "RunLogger":
        self._file.ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def set_run_id(self, run_id: str) -> None:
        rid = (run_id or "").strip()
        if rid:
            self._run_id = rid

    def bind(self, **context: Any) -> "RunLogger":
        merged = {**self._context, **context}
        return RunLogger(
            self._path,
            run_id=self._run_id,
            session_id=self._session_id,
            _file=self._file,
            _context=merged,
        )

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, url=url, **data)

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        url: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, url=url, error=err, **data)

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": (level or "").strip().upper() or "INFO",
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }

        if self._run_id:
            record["run_id"] = self._run_id
        if self._context:
            record.update(self._context)

        u = (url or "").strip()
        if u:
            record["url"] = u

        if data:
            record["data"] = data

        self._file.write(record)


class NullLogger:
    """Logger that drops everything; the default when callers pass none."""

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        return None

    def exception(
        self, event: str, *, exc: BaseException, url: str | None = None, **data: Any
    ) -> None:
        return None

    def bind(self, **context: Any) -> "NullLogger":
        return self
