from __future__ import annotations

import json
import tempfile
import threading
import unittest
from pathlib import Path
from typing import Any

from threads_toolkit.apify_retry import is_retryable_apify_exception
from threads_toolkit.errors import SinkError
from threads_toolkit.retry import RetryConfig
from threads_toolkit.sink import ApifyDatasetSink, JsonlSink, MemorySink


class _FakeDatasetClient:
    def __init__(self, failures: list[BaseException] | None = None) -> None:
        self._failures = list(failures or [])
        self.pushed: list[Any] = []

    def push_items(self, items: Any) -> None:
        if self._failures:
            raise self._failures.pop(0)
        self.pushed.append(items)


class _FakeApifyClient:
    def __init__(self, dataset: _FakeDatasetClient) -> None:
        self.dataset_ids: list[str] = []
        self._dataset = dataset

    def dataset(self, dataset_id: str) -> _FakeDatasetClient:
        self.dataset_ids.append(dataset_id)
        return self._dataset


class TestJsonlSink(unittest.TestCase):
    def test_writes_one_line_per_record_from_many_threads(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nested" / "records.jsonl"
            with JsonlSink(path) as sink:
                threads = [
                    threading.Thread(target=sink.push, args=({"id": str(i), "content": "文字"},))
                    for i in range(20)
                ]
                for t in threads:
                    t.start()
                for t in threads:
                    t.join()
                self.assertEqual(sink.count, 20)

            lines = path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 20)
            ids = sorted(int(json.loads(ln)["id"]) for ln in lines)
            self.assertEqual(ids, list(range(20)))
            self.assertIn("文字", lines[0])

    def test_overwrite_truncates_once_then_appends(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "records.jsonl"
            path.write_text('{"id": "stale"}\n', encoding="utf-8")

            sink = JsonlSink(path, overwrite=True)
            sink.push({"id": "1"})
            sink.close()
            sink.push({"id": "2"})
            sink.close()

            ids = [json.loads(ln)["id"] for ln in path.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(ids, ["1", "2"])

    def test_default_appends(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "records.jsonl"
            path.write_text('{"id": "old"}\n', encoding="utf-8")
            with JsonlSink(path) as sink:
                sink.push({"id": "new"})
            ids = [json.loads(ln)["id"] for ln in path.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(ids, ["old", "new"])


class TestMemorySink(unittest.TestCase):
    def test_copies_records(self) -> None:
        sink = MemorySink()
        record = {"id": "1"}
        sink.push(record)
        record["id"] = "2"
        self.assertEqual(sink.records, [{"id": "1"}])


class TestApifyDatasetSink(unittest.TestCase):
    def test_pushes_to_dataset(self) -> None:
        dataset = _FakeDatasetClient()
        client = _FakeApifyClient(dataset)
        sink = ApifyDatasetSink("token", "ds-1", client=client)  # type: ignore[arg-type]

        sink.push({"id": "A"})

        self.assertEqual(client.dataset_ids, ["ds-1"])
        self.assertEqual(dataset.pushed, [{"id": "A"}])

    def test_retries_network_errors(self) -> None:
        dataset = _FakeDatasetClient(failures=[ConnectionError("reset")])
        sleeps: list[float] = []
        sink = ApifyDatasetSink(
            "token",
            "ds-1",
            client=_FakeApifyClient(dataset),  # type: ignore[arg-type]
            retry=RetryConfig(max_attempts=3, base_delay_seconds=0.5, jitter_ratio=0.0),
            sleep_fn=sleeps.append,
        )

        sink.push({"id": "A"})

        self.assertEqual(dataset.pushed, [{"id": "A"}])
        self.assertEqual(sleeps, [0.5])

    def test_non_retryable_error_becomes_sink_error(self) -> None:
        dataset = _FakeDatasetClient(failures=[ValueError("bad item")])
        sleeps: list[float] = []
        sink = ApifyDatasetSink(
            "token",
            "ds-1",
            client=_FakeApifyClient(dataset),  # type: ignore[arg-type]
            sleep_fn=sleeps.append,
        )

        with self.assertRaises(SinkError):
            sink.push({"id": "A"})
        self.assertEqual(sleeps, [])


class TestApifyRetryClassification(unittest.TestCase):
    def test_network_errors_are_retryable(self) -> None:
        self.assertEqual(is_retryable_apify_exception(TimeoutError()), (True, "network_error"))
        self.assertEqual(is_retryable_apify_exception(ValueError()), (False, None))


if __name__ == "__main__":
    unittest.main()
