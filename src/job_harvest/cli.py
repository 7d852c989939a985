from __future__ import annotations

import argparse
import json
import signal
import sys
from typing import Any

from job_harvest.config import (
    PROCESS_REQUIRED_ENVS,
    RUN_REQUIRED_ENVS,
    Settings,
    assert_required_envs,
    load_settings,
    mask_secret,
    missing_envs,
)
from job_harvest.logging_setup import configure_logging
from job_harvest.service import JobHarvestService, build_service


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="job-harvest")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Run one fetch + enrich + store cycle and exit")
    serve_parser = subparsers.add_parser("serve", help="Run cycles on a timer until interrupted")
    serve_parser.add_argument(
        "--interval-minutes",
        type=float,
        default=None,
        help="Override POLL_INTERVAL_MINUTES",
    )

    process_parser = subparsers.add_parser(
        "process-message",
        help="Classify, extract and store a single pasted job post",
    )
    process_parser.add_argument("text", help="Post text, or '-' to read it from stdin")

    subparsers.add_parser("init-storage", help="Prepare the configured storage backend")
    subparsers.add_parser(
        "describe",
        help="Print channels, storage and resume setup (a running serve reports live state on SIGUSR1)",
    )
    subparsers.add_parser("healthcheck", help="Validate config and local runtime readiness")
    return parser


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _cmd_run(service: JobHarvestService) -> int:
    result = service.run_cycle_now()
    if result["status"] != "success":
        print("run failed:", result["message"])
        return 1

    print(
        "run summary:",
        f"new_messages={result['new_messages_found']}",
        f"processed={result['processed']}",
        f"relevant={result['relevant']}",
        f"saved={result['saved']}",
        f"cancelled={result['cancelled']}",
    )
    return 0


def _install_signal_handlers(service: JobHarvestService) -> None:
    """Operator controls for a running `serve`: stop, status dump, cursor and counter resets."""

    def _handle_stop(signum, _frame) -> None:
        print(f"received signal {signum}, stopping after the current step")
        service.stop()

    def _handle_status(_signum, _frame) -> None:
        _print_json(service.get_status())

    def _handle_reset_cursors(_signum, _frame) -> None:
        service.reset_channel_cursors()
        print("channel cursors reset")

    def _handle_reset_counters(_signum, _frame) -> None:
        service.reset_counters()
        print("processing counters reset")

    signal.signal(signal.SIGINT, _handle_stop)
    signal.signal(signal.SIGTERM, _handle_stop)
    signal.signal(signal.SIGUSR1, _handle_status)
    signal.signal(signal.SIGHUP, _handle_reset_cursors)
    signal.signal(signal.SIGUSR2, _handle_reset_counters)


def _cmd_serve(service: JobHarvestService, interval_minutes: float | None) -> int:
    _install_signal_handlers(service)
    service.initialize_storage()
    interval = interval_minutes * 60 if interval_minutes else None
    service.serve(interval)
    return 0


def _cmd_process_message(service: JobHarvestService, text: str) -> int:
    if text == "-":
        text = sys.stdin.read()
    result = service.process_single_message(text)
    _print_json(result)
    return 1 if result["status"] == "error" else 0


def _cmd_init_storage(service: JobHarvestService) -> int:
    result = service.initialize_storage()
    _print_json(result)
    return 0 if result["status"] == "success" else 1


def _cmd_describe(service: JobHarvestService) -> int:
    _print_json(service.describe_configuration())
    return 0


def _cmd_healthcheck(settings: Settings) -> int:
    missing = missing_envs(RUN_REQUIRED_ENVS)
    if missing:
        print("missing required env vars:", ", ".join(missing))
        return 1

    print("channels:", ", ".join(settings.channels))
    print("reasoning model:", settings.gemini_model, f"(key {mask_secret(settings.gemini_api_key)})")

    service = build_service(settings)
    print("storage:", service.router.describe())

    generator = service.pipeline.resume_generator
    if generator is not None:
        resume = generator.status()
        if generator.enabled:
            print(f"resume template ready: {resume['template_path']}")
        else:
            print(f"resume template missing, resumes will be skipped: {resume['template_path']}")
        if not resume["object_store_configured"]:
            print("object store credentials missing, resume uploads will fail")
        if generator.compiler.is_available():
            print("LaTeX compile service reachable")
        else:
            print("LaTeX compile service unreachable, resumes will be skipped")
    print("healthcheck passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        if args.command == "healthcheck":
            return _cmd_healthcheck(settings)
        if args.command in {"run", "serve", "process-message"}:
            required = PROCESS_REQUIRED_ENVS if args.command == "process-message" else RUN_REQUIRED_ENVS
            assert_required_envs(required)

        service = build_service(settings)
        if args.command == "run":
            return _cmd_run(service)
        if args.command == "serve":
            return _cmd_serve(service, args.interval_minutes)
        if args.command == "process-message":
            return _cmd_process_message(service, args.text)
        if args.command == "init-storage":
            return _cmd_init_storage(service)
        if args.command == "describe":
            return _cmd_describe(service)
    except ValueError as exc:
        print(exc)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
