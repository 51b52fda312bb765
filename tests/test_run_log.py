from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from threads_toolkit.run_log import NullLogger, RunLogger


def _read(path: Path) -> list[dict]:
    return [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines() if ln.strip()]


class TestRunLogger(unittest.TestCase):
    def test_bound_children_share_the_file_and_carry_context(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "run.log"
            with RunLogger.open(path, run_id="r1") as log:
                log.info("started", url="https://www.threads.com/", count=1)
                child = log.bind(task="search:running")
                child.warning("rate_limit_retry", attempt=1)
                child.bind(worker=2).info("nested")

            records = _read(path)

        self.assertEqual([r["event"] for r in records], ["started", "rate_limit_retry", "nested"])
        self.assertEqual(records[0]["url"], "https://www.threads.com/")
        self.assertEqual(records[0]["data"], {"count": 1})
        self.assertNotIn("task", records[0])
        self.assertEqual(records[1]["level"], "WARN")
        self.assertEqual(records[1]["task"], "search:running")
        self.assertEqual(records[2]["worker"], 2)
        self.assertEqual(records[2]["task"], "search:running")
        self.assertEqual({r["run_id"] for r in records}, {"r1"})
        self.assertEqual(len({r["session_id"] for r in records}), 1)

    def test_exception_records_type_and_traceback(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "run.log"
            with RunLogger.open(path) as log:
                try:
                    raise ValueError("boom")
                except ValueError as e:
                    log.exception("task_failed", exc=e)

            (record,) = _read(path)

        self.assertEqual(record["level"], "ERROR")
        self.assertEqual(record["data"]["error"]["type"], "ValueError")
        self.assertEqual(record["data"]["error"]["message"], "boom")
        self.assertIn("Traceback", record["data"]["error"]["traceback"])

    def test_overwrite_truncates_previous_run(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "run.log"
            with RunLogger.open(path) as log:
                log.info("first")
            with RunLogger.open(path, overwrite=True) as log:
                log.info("second")

            self.assertEqual([r["event"] for r in _read(path)], ["second"])


class TestNullLogger(unittest.TestCase):
    def test_accepts_everything(self) -> None:
        log = NullLogger()
        child = log.bind(task="x")
        self.assertIs(child, log)
        child.info("event", url="u", a=1)
        child.exception("event", exc=RuntimeError("x"))


if __name__ == "__main__":
    unittest.main()
