from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .classifier import classify
from .config import RuntimeSecrets, config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, RecordRejected, SinkError
from .extractor import extract_items, extract_profile
from .offline import StaticDocument
from .report import build_batch_report, format_batch_report
from .run_log import Logger, RunLogger
from .runner import run
from .sink import ApifyDatasetSink, JsonlSink, RecordSink
from .validator import mark_completeness, validate_post


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="threads_toolkit")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_cmd = subparsers.add_parser(
        "run",
        help="Run every configured extraction task and write the records.",
    )
    run_cmd.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    run_cmd.add_argument(
        "--out",
        required=True,
        help="Output directory for records and logs.",
    )
    run_cmd.set_defaults(_handler=_cmd_run)

    dry = subparsers.add_parser(
        "dry-run",
        help="Classify and extract a saved HTML snapshot without a browser.",
    )
    dry.add_argument(
        "--html",
        required=True,
        help="Path to a saved HTML page.",
    )
    dry.add_argument(
        "--kind",
        choices=("posts", "profile"),
        default="posts",
        help="What the snapshot shows.",
    )
    dry.add_argument(
        "--username",
        default=None,
        help="Profile username (required with --kind profile).",
    )
    dry.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of posts to extract.",
    )
    dry.set_defaults(_handler=_cmd_dry_run)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _dump(value: object) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, sort_keys=True)


def _cmd_dry_run(args: argparse.Namespace) -> int:
    path = Path(args.html)
    try:
        html = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read HTML snapshot: {path}") from e

    document = StaticDocument.from_html(html)
    state = classify(document)
    print("classification=")
    print(_dump(state.to_output()))

    if args.kind == "profile":
        username = (args.username or "").strip().lstrip("@")
        if not username:
            raise ConfigError("--username is required with --kind profile")

        profile = extract_profile(document, username)
        if profile is None:
            print("profile=null")
            return 0
        try:
            profile = mark_completeness(profile)
        except RecordRejected as e:
            print(f"rejected={e.reason}")
            return 0
        print(f"partial={str(profile.partial).lower()}")
        print("profile=")
        print(_dump(profile.to_output()))
        return 0

    posts = extract_items(document, args.limit)
    valid = []
    for post in posts:
        result = validate_post(post)
        if result.valid:
            valid.append(post.to_output())
        else:
            print(f"skipped id={post.id} reason={result.reason}")

    print(f"extracted_count={len(posts)}")
    print(f"valid_count={len(valid)}")
    print("records=")
    print(_dump(valid))
    return 0


def _open_sink(cfg: AppConfig, secrets: RuntimeSecrets, out_dir: Path) -> RecordSink:
    if cfg.output.sink == "apify":
        return ApifyDatasetSink(secrets.apify_token or "", secrets.apify_dataset_id or "")
    path = Path(cfg.output.jsonl_path) if cfg.output.jsonl_path else out_dir / "records.jsonl"
    return JsonlSink(path, overwrite=True).open()


def _sink_location(sink: RecordSink, secrets: RuntimeSecrets) -> str:
    if isinstance(sink, JsonlSink):
        return str(sink.path)
    return f"apify-dataset:{secrets.apify_dataset_id}"


def _run_batch(cfg: AppConfig, secrets: RuntimeSecrets, out_dir: Path, log: Logger) -> dict[str, Any]:
    sink = _open_sink(cfg, secrets, out_dir)
    try:
        result = run(cfg, sink=sink, logger=log)
    finally:
        if isinstance(sink, JsonlSink):
            sink.close()

    report = build_batch_report(result)
    log.info("batch_report", **report)
    report["records_location"] = _sink_location(sink, secrets)
    return report


def _cmd_run(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info(
            "run_command_started",
            config_path=str(args.config),
            out_dir=str(out_dir),
        )

        try:
            cfg = load_config(args.config)
            secrets = resolve_runtime_secrets(cfg)

            log.info(
                "config_loaded",
                config_path=str(args.config),
                config_sha256=config_sha256(cfg),
                sink=cfg.output.sink,
                concurrency=cfg.batch.concurrency,
            )

            report = _run_batch(cfg, secrets, out_dir, log)
            details = report["details"]

            print(f"status={report['status']}")
            print(f"total={details['total']}")
            print(f"success={details['success']}")
            print(f"fail={details['fail']}")
            print(f"records={details['records_emitted']}")
            print(f"records_location={report['records_location']}")
            print(f"run_log={log_path}")

            if report["status"] != "completed":
                print(format_batch_report(report))

            # A finished batch is a successful run even when some tasks failed.
            return 0
        except Exception as e:
            log.exception("run_command_failed", exc=e)
            raise


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except SinkError as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
