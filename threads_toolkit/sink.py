from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import Any, Mapping, Protocol, TextIO

from apify_client import ApifyClient

from .apify_retry import is_retryable_apify_exception
from .errors import SinkError
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries

_DEFAULT_PUSH_RETRY = RetryConfig(
    max_attempts=5,
    base_delay_seconds=1.0,
    max_delay_seconds=20.0,
    jitter_ratio=0.0,
)


class RecordSink(Protocol):
    def push(self, record: Mapping[str, Any]) -> None: ...


class MemorySink:
    """Keeps pushed records in memory. Used by dry runs and tests."""

    def __init__(self) -> None:
        self._records: list[dict[str, Any]] = []
        self._lock = Lock()

    def push(self, record: Mapping[str, Any]) -> None:
        with self._lock:
            self._records.append(dict(record))

    @property
    def records(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonlSink:
    """
    Writes one JSON object per record; safe to share between worker threads.

    With `overwrite` the file is truncated on first open, so a rerun into the
    same directory does not mix records from earlier runs.
    """

    def __init__(self, path: str | Path, *, overwrite: bool = False) -> None:
        self._path = Path(path)
        self._overwrite = bool(overwrite)
        self._opened = False
        self._lock = Lock()
        self._fp: TextIO | None = None
        self._count = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        return self._count

    def open(self) -> "JsonlSink":
        with self._lock:
            if self._fp is None:
                try:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    mode = "w" if self._overwrite and not self._opened else "a"
                    self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
                    self._opened = True
                except OSError as e:
                    raise SinkError(f"Failed to open output file: {self._path}") from e
        return self

    def push(self, record: Mapping[str, Any]) -> None:
        self.open()
        line = json.dumps(dict(record), ensure_ascii=False, sort_keys=True)
        with self._lock:
            if self._fp is None:
                raise SinkError(f"Output file is closed: {self._path}")
            try:
                self._fp.write(line + "\n")
                self._fp.flush()
            except OSError as e:
                raise SinkError(f"Failed to write record to {self._path}") from e
            self._count += 1

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "JsonlSink":
        return self.open()

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()


class ApifyDatasetSink:
    """
    Pushes records to an Apify dataset, one item per call.

    Network errors, HTTP 429 and 5xx are retried with backoff; anything else,
    or running out of attempts, raises SinkError.
    """

    def __init__(
        self,
        token: str,
        dataset_id: str,
        *,
        client: ApifyClient | None = None,
        retry: RetryConfig | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._dataset_id = dataset_id
        self._retry = retry or _DEFAULT_PUSH_RETRY
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn

        if client is not None:
            self._client = client
        else:
            # Client-level retries are disabled so one policy applies.
            try:
                self._client = ApifyClient(token=token, max_retries=0)
            except TypeError:
                self._client = ApifyClient(token=token)

    def push(self, record: Mapping[str, Any]) -> None:
        item = dict(record)
        dataset = self._client.dataset(self._dataset_id)

        try:
            call_with_retries(
                lambda: dataset.push_items(item),
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation="apify.dataset.push_items",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except Exception as e:
            raise SinkError(f"Apify dataset push failed ({self._dataset_id}): {e}") from e
