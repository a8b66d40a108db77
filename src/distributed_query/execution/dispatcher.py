"""Fan-out of one query to many servers.

Each server is an independent unit of work on a bounded thread pool:

    Pending -> Skipped (cancelled)            -> outcome
    Pending -> Running -> Succeeded | Failed  -> outcome

Every unit produces exactly one QueryOutcome, which is handed to the
ResultAggregator from the worker thread, so the log reflects completion order.
Database I/O happens outside the aggregator lock.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
import threading
from typing import Optional, Sequence

from distributed_query.db import get_runner
from distributed_query.db.utils import ConnectionProfile, QueryRunner
from distributed_query.exceptions.errors import ConfigurationError
from distributed_query.execution.aggregator import ResultAggregator
from distributed_query.execution.executor import ServerExecutor, describe_fault
from distributed_query.execution.models import AggregateResult, DispatchConfig, QueryOutcome, QueryRequest
from distributed_query.execution.progress import ProgressCallback, ProgressReporter
from distributed_query.logging.logger import get_logger


log = get_logger("execution.dispatcher")


@dataclass(frozen=True)
class Dispatcher:
    """Runs a QueryRequest on every server and returns the merged result.

    The dispatcher holds no per-call state, so one instance can serve
    concurrent distribute() calls with different configurations.
    """

    executor: ServerExecutor

    @classmethod
    def for_backend(cls, backend: str) -> "Dispatcher":
        return cls(executor=ServerExecutor(runner=get_runner(backend)))

    def _run_unit(
        self,
        request: QueryRequest,
        server: str,
        timeout_seconds: int,
        aggregator: ResultAggregator,
        cancel_signal: Optional[threading.Event],
    ) -> None:
        if cancel_signal is not None and cancel_signal.is_set():
            outcome = QueryOutcome.cancelled(server)
        else:
            try:
                outcome = self.executor.execute(request.text, server, request.credentials, timeout_seconds)
            except Exception as e:
                # ServerExecutor already converts driver faults; this covers faults in the executor itself.
                log.exception("Unexpected executor fault", extra={"server": server})
                outcome = QueryOutcome.failed(server, describe_fault(e))

        logged = aggregator.absorb(outcome)
        if not logged.success:
            log.warning(
                "Server did not succeed",
                extra={"server": server, "status": logged.status.value, "reason": logged.message},
            )

    def distribute(
        self,
        request: QueryRequest,
        servers: Sequence[str],
        config: DispatchConfig,
        cancel_signal: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AggregateResult:
        """Execute request on every server with at most config.max_parallelism in flight.

        cancel_signal is polled once per unit before it starts; units already
        running are never interrupted. on_progress receives the completion
        percentage after each unit finishes and reaches 100 with the last one.
        """
        config.validate()
        if not (request.text or "").strip():
            raise ConfigurationError("Query text must not be empty")

        servers = list(servers)
        timeout_seconds = config.timeout_seconds if request.timeout_seconds is None else request.timeout_seconds
        if timeout_seconds < 0:
            raise ConfigurationError(f"timeout_seconds must be >= 0, got {timeout_seconds!r}")

        if not servers:
            # No units, so no progress reports.
            log.info("No servers selected")
            aggregator = ResultAggregator(config, total_units=0)
            aggregator.absorb(QueryOutcome.no_servers())
            return aggregator.result()

        aggregator = ResultAggregator(config, total_units=len(servers), progress=ProgressReporter(on_progress))

        workers = min(config.max_parallelism, len(servers))
        log.info(
            "Distributing query",
            extra={"servers": len(servers), "workers": workers, "timeout": timeout_seconds, "add_server_column": config.add_server_column},
        )

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dq-worker") as pool:
            futures = [
                pool.submit(self._run_unit, request, server, timeout_seconds, aggregator, cancel_signal)
                for server in servers
            ]
            wait(futures)

        # Surfaces faults in the aggregation itself; server faults are already outcomes.
        for f in futures:
            f.result()

        result = aggregator.result()
        log.info(
            "Distribution finished",
            extra={
                "servers": len(servers),
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
                "rows": len(result.merged_rows),
                "total_impact": result.total_impact,
            },
        )
        return result


def distribute_query(
    query: str,
    servers: Sequence[str],
    timeout_seconds: int = 30,
    max_parallelism: int = 4,
    add_server_column: bool = False,
    credentials: Optional[ConnectionProfile] = None,
    cancel_signal: Optional[threading.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
    backend: str = "mssql",
    runner: Optional[QueryRunner] = None,
    count_failed_impact: bool = True,
) -> AggregateResult:
    """Flat entry point: build request/config and distribute in one call.

    Pass runner to use a custom QueryRunner instead of a named backend.
    """
    config = DispatchConfig(
        max_parallelism=max_parallelism,
        add_server_column=add_server_column,
        timeout_seconds=timeout_seconds,
        count_failed_impact=count_failed_impact,
    )
    request = QueryRequest(text=query, timeout_seconds=timeout_seconds, credentials=credentials or ConnectionProfile())
    dispatcher = Dispatcher(ServerExecutor(runner)) if runner is not None else Dispatcher.for_backend(backend)
    return dispatcher.distribute(request, servers, config, cancel_signal=cancel_signal, on_progress=on_progress)
