"""Command line entry point: run one query on a list of servers.

Examples:
  distributed-query "SELECT @@VERSION AS V" --servers sql01,sql02 --add-server-column
  distributed-query --query-file audit.sql --servers-file fleet.txt --output out/audit.csv
"""
from __future__ import annotations

import argparse
from dataclasses import replace
import sys
import threading
from pathlib import Path
from typing import List, Optional

from distributed_query.config.settings import Settings, load_settings
from distributed_query.db import available_backends
from distributed_query.exceptions.errors import ConfigurationError, ExportError
from distributed_query.execution.dispatcher import Dispatcher
from distributed_query.execution.models import AggregateResult, QueryRequest
from distributed_query.export.exporter import export_csv
from distributed_query.ingestion.servers import load_servers, split_servers
from distributed_query.logging.logger import get_logger, init_logging

log = get_logger("cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SERVER_FAILURES = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="distributed-query",
        description="Run one query concurrently on many database servers and merge the results.",
    )
    parser.add_argument("query", nargs="?", default=None, help="Query text. Use --query-file for longer scripts.")
    parser.add_argument("--query-file", default=None, help="Read the query text from this file (UTF-8).")
    parser.add_argument("--servers", default=None, help="Comma separated server list (defaults from config/SERVERS).")
    parser.add_argument("--servers-file", default=None, help="File with one server per line ('#' starts a comment).")
    parser.add_argument("--backend", default=None, choices=available_backends(), help="Database backend (defaults from config/DB_BACKEND).")
    parser.add_argument("--timeout", type=int, default=None, help="Connection and command timeout in seconds, 0 = none.")
    parser.add_argument("--max-parallelism", dest="max_parallelism", type=int, default=None, help="Maximum servers queried at once.")
    parser.add_argument("--add-server-column", dest="add_server_column", action="store_true", default=None, help="Append a column with the server name to every row.")
    parser.add_argument("--user", default=None, help="Login name; switches off integrated security.")
    parser.add_argument("--password", default=None, help="Password for --user (prefer DB_PASSWORD in the environment).")
    parser.add_argument("--database", default=None, help="Database name on every server.")
    parser.add_argument("--output", default=None, help="Write merged rows to this CSV file.")
    parser.add_argument("--log-output", dest="log_output", default=None, help="Write the per-server log to this CSV file.")
    parser.add_argument("--config-dir", dest="config_dir", default="config", help="Directory holding <APP_ENV>.yaml.")
    parser.add_argument("--quiet", action="store_true", help="Do not print progress.")
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.timeout is not None:
        overrides["timeout_seconds"] = args.timeout
    if args.max_parallelism is not None:
        overrides["max_parallelism"] = args.max_parallelism
    if args.add_server_column:
        overrides["add_server_column"] = True
    if args.user:
        overrides["integrated_security"] = False
        overrides["db_user"] = args.user
    if args.password is not None:
        overrides["db_password"] = args.password
    if args.database:
        overrides["db_name"] = args.database
    return replace(settings, **overrides)


def _resolve_query(args: argparse.Namespace) -> str:
    if args.query_file:
        return Path(args.query_file).read_text(encoding="utf-8")
    if args.query:
        return args.query
    raise ConfigurationError("Provide the query text or --query-file")


def _resolve_servers(settings: Settings, args: argparse.Namespace) -> List[str]:
    if args.servers_file:
        return load_servers(args.servers_file)
    if args.servers is not None:
        return split_servers(args.servers)
    return list(settings.servers)


def _print_report(result: AggregateResult) -> None:
    print(f"{'SERVER':<30} {'STATUS':<10} {'IMPACT':>8}  MESSAGE")
    for o in result.log:
        print(f"{o.server:<30} {o.status.value:<10} {o.impact_count:>8}  {o.message}")
    print(f"Rows: {len(result.merged_rows)}  Total impact: {result.total_impact}")


def _run_interruptible(dispatcher: Dispatcher, request: QueryRequest, servers: List[str], settings: Settings, on_progress) -> AggregateResult:
    """Run the distribution on a helper thread; Ctrl+C sets the cancel signal."""
    cancel = threading.Event()
    box: dict = {}

    def _target() -> None:
        try:
            box["result"] = dispatcher.distribute(
                request, servers, settings.dispatch_config(), cancel_signal=cancel, on_progress=on_progress
            )
        except BaseException as e:
            box["error"] = e

    worker = threading.Thread(target=_target, name="dq-dispatch")
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            if not cancel.is_set():
                print("Cancelling: waiting for running servers to finish...", file=sys.stderr)
                cancel.set()

    if "error" in box:
        raise box["error"]
    return box["result"]


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _apply_overrides(load_settings(args.config_dir), args)
        init_logging(settings.log_level, settings.log_file)

        query = _resolve_query(args)
        servers = _resolve_servers(settings, args)
        dispatcher = Dispatcher.for_backend(settings.backend)
        request = QueryRequest(text=query, timeout_seconds=settings.timeout_seconds, credentials=settings.connection_profile())

        def _progress(percent: int) -> None:
            if not args.quiet:
                print(f"\rProgress: {percent:3d}%", end="\n" if percent >= 100 else "", file=sys.stderr, flush=True)

        result = _run_interruptible(dispatcher, request, servers, settings, _progress)

        _print_report(result)
        if args.output:
            export_csv(result.merged_rows, args.output)
        if args.log_output:
            export_csv(result.log_frame(), args.log_output)
    except (ConfigurationError, ExportError, FileNotFoundError) as e:
        log.error("Run aborted", extra={"error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not result.all_succeeded:
        print(result.error_summary(), file=sys.stderr)
        return EXIT_SERVER_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
