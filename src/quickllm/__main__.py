"""CLI entry point for quickllm."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from pathlib import Path
from typing import Awaitable, Callable

import yaml

from quickllm.app import QuickLLMApp
from quickllm.config import AppConfig, load_config
from quickllm.core.types import ClipboardOperation, Status
from quickllm.errors import QuickLLMError
from quickllm.log import setup_logging
from quickllm.providers.registry import PROVIDER_KINDS


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="quickllm",
        description="Transform text with a local or cloud LLM and keep an audited history",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = _add_command(subparsers, "process", "Transform text (argument or stdin)")
    process_parser.add_argument("text", nargs="?", help="Text to transform; read from stdin if omitted")

    mode_parser = _add_command(subparsers, "set-mode", "Select the processing mode")
    mode_parser.add_argument("mode", help="Mode id, or 'auto' to classify each input")

    provider_parser = _add_command(subparsers, "set-provider", "Select the active provider")
    provider_parser.add_argument("kind", choices=PROVIDER_KINDS)
    provider_parser.add_argument("--model", help="Model id to use with this provider")

    key_parser = _add_command(subparsers, "set-key", "Store an API key (prompted, blank clears)")
    key_parser.add_argument("kind", choices=PROVIDER_KINDS)

    test_parser = _add_command(subparsers, "test-connection", "Check a provider end to end")
    test_parser.add_argument("kind", nargs="?", choices=PROVIDER_KINDS)

    history_parser = _add_command(subparsers, "history", "Show recent results")
    history_parser.add_argument("--limit", type=int, default=10)
    history_parser.add_argument("--session", help="Only this session id")

    clear_parser = _add_command(subparsers, "clear-history", "Delete history entries")
    clear_parser.add_argument("--session", help="Only this session id")

    stats_parser = _add_command(subparsers, "stats", "Show per-session request statistics")
    stats_parser.add_argument("--session", help="Only this session id")
    stats_parser.add_argument("--limit", type=int, default=5)

    export_parser = _add_command(subparsers, "export", "Export all recorded data as JSON")
    export_parser.add_argument("--out", help="Output file (default: stdout)")

    _add_command(subparsers, "config-check", "Validate configuration and show a summary")

    export_settings_parser = _add_command(subparsers, "export-settings", "Print the settings snapshot")
    export_settings_parser.add_argument("--out", help="Output file (default: stdout)")

    import_settings_parser = _add_command(subparsers, "import-settings", "Load a settings snapshot")
    import_settings_parser.add_argument("file", help="YAML or JSON snapshot file")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = _load(args.config, args.env)
    setup_logging(config.log_level)

    handlers: dict[str, Callable[[QuickLLMApp, argparse.Namespace], Awaitable[int]]] = {
        "process": _process,
        "set-mode": _set_mode,
        "set-provider": _set_provider,
        "set-key": _set_key,
        "test-connection": _test_connection,
        "history": _history,
        "clear-history": _clear_history,
        "stats": _stats,
        "export": _export,
        "config-check": _config_check,
        "export-settings": _export_settings,
        "import-settings": _import_settings,
    }
    sys.exit(asyncio.run(_run(config, handlers[args.command], args)))


def _add_command(subparsers, name: str, help_text: str) -> argparse.ArgumentParser:
    command = subparsers.add_parser(name, help=help_text)
    command.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    command.add_argument("-e", "--env", default=".env", help="Path to .env file")
    return command


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


async def _run(
    config: AppConfig,
    handler: Callable[[QuickLLMApp, argparse.Namespace], Awaitable[int]],
    args: argparse.Namespace,
) -> int:
    app = QuickLLMApp(config)
    # Only commands that transform text open a session.
    await app.start(open_session=args.command in ("process", "test-connection"))
    try:
        return await handler(app, args)
    except QuickLLMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await app.stop()


async def _process(app: QuickLLMApp, args: argparse.Namespace) -> int:
    text = args.text if args.text is not None else sys.stdin.read()
    orchestrator = app.orchestrator
    orchestrator.add_status_listener(_print_status)

    await orchestrator.record_clipboard(ClipboardOperation.COPY, text, source="cli")
    result = await orchestrator.process(text)
    if result is None:
        print("Nothing to process.", file=sys.stderr)
        return 1

    await orchestrator.record_clipboard(
        ClipboardOperation.PASTE, result.text, mode=result.mode, source="automatic"
    )
    print(result.text)
    return 0


def _print_status(status: Status, message: str) -> None:
    if status is not Status.READY:
        print(f"[{status}] {message}", file=sys.stderr)


async def _set_mode(app: QuickLLMApp, args: argparse.Namespace) -> int:
    app.orchestrator.set_mode(args.mode)
    print(f"Mode set to {args.mode}")
    return 0


async def _set_provider(app: QuickLLMApp, args: argparse.Namespace) -> int:
    app.settings.set_provider(args.kind)
    if args.model:
        app.settings.set_model(args.kind, args.model)
    print(f"Provider set to {args.kind} (model: {app.settings.get_model(args.kind)})")
    return 0


async def _set_key(app: QuickLLMApp, args: argparse.Namespace) -> int:
    secret = getpass.getpass(f"{args.kind} API key (blank to clear): ")
    update = app.settings.set_credential(args.kind, secret)
    if not update.success:
        print(f"Rejected: {update.message}", file=sys.stderr)
        return 1
    print(f"{update.message} {update.masked}".rstrip())
    return 0


async def _test_connection(app: QuickLLMApp, args: argparse.Namespace) -> int:
    report = await app.orchestrator.test_connection(args.kind)
    print(report.message)
    if report.test_output:
        print(f"  Output: {report.test_output}")
    return 0 if report.success else 1


async def _history(app: QuickLLMApp, args: argparse.Namespace) -> int:
    entries = await app.history.get_history(args.session, limit=args.limit)
    if not entries:
        print("No history.")
        return 0
    for entry in entries:
        print(f"[{entry.timestamp:%Y-%m-%d %H:%M:%S}] {entry.mode} via {entry.provider}/{entry.model}")
        print(f"  in : {entry.original_text[:100]}")
        print(f"  out: {entry.processed_text[:200]}")
    return 0


async def _clear_history(app: QuickLLMApp, args: argparse.Namespace) -> int:
    deleted = await app.history.clear_history(args.session)
    print(f"Deleted {deleted} history entries.")
    return 0


async def _stats(app: QuickLLMApp, args: argparse.Namespace) -> int:
    if args.session:
        session_ids = [args.session]
    else:
        session_ids = [s.session_id for s in await app.history.list_recent_sessions(args.limit)]

    for session_id in session_ids:
        stats = await app.history.get_session_stats(session_id)
        if stats is None:
            print(f"Unknown session: {session_id}", file=sys.stderr)
            return 1
        avg = f"{stats.avg_processing_time_ms:.0f}ms" if stats.avg_processing_time_ms else "-"
        print(f"{stats.session_id} ({stats.provider}/{stats.model}) started {stats.start_time:%Y-%m-%d %H:%M}")
        print(
            f"  requests: {stats.total_requests} "
            f"(ok {stats.successful_requests}, failed {stats.failed_requests}, "
            f"pending {stats.pending_requests}), avg {avg}"
        )
        print(f"  chars in/out: {stats.total_input_chars}/{stats.total_output_chars}")
    return 0


async def _export(app: QuickLLMApp, args: argparse.Namespace) -> int:
    data = await app.history.export_data()
    _write_output(json.dumps(data, indent=2, ensure_ascii=False), args.out)
    return 0


async def _config_check(app: QuickLLMApp, args: argparse.Namespace) -> int:
    config = app.config
    settings = app.settings
    print(f"Configuration valid: {args.config}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Database: {config.storage.db_path}")
    print(f"  Settings: {config.storage.settings_path}")
    print(f"  Mode: {settings.current_mode}")
    print(f"  Active provider: {settings.provider}")
    for kind in PROVIDER_KINDS:
        provider = settings.get_provider_config(kind)
        endpoint = config.providers.endpoint(kind)
        print(f"    - {kind}: {provider.model} [{endpoint.base_url}] key={provider.credential_status}")
    return 0


async def _export_settings(app: QuickLLMApp, args: argparse.Namespace) -> int:
    snapshot = app.settings.export_settings()
    _write_output(yaml.safe_dump(snapshot, sort_keys=False, allow_unicode=True), args.out)
    return 0


async def _import_settings(app: QuickLLMApp, args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 1
    # JSON is a subset of YAML, so one loader covers both.
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    await app.history.backup_settings(app.settings.export_settings(), name=f"before_import_{path.name}")
    app.settings.import_settings(data)
    print(f"Imported settings from {path}")
    return 0


def _write_output(text: str, out: str | None) -> None:
    if out:
        Path(out).write_text(text, encoding="utf-8")
        print(f"Written to {out}")
    else:
        print(text)


if __name__ == "__main__":
    main()
