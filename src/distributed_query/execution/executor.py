from __future__ import annotations

from dataclasses import dataclass

from distributed_query.db.utils import ConnectionProfile, QueryRunner
from distributed_query.execution.models import QueryOutcome
from distributed_query.logging.logger import get_logger


log = get_logger("execution.executor")


def compute_impact(rows_modified: int, rows_retrieved: int) -> int:
    """Unified impact metric: modified rows plus returned rows.

    A statement that both modifies and returns rows (OUTPUT / RETURNING) is
    counted twice. Negative driver counts ("not reported") contribute zero.
    """
    return max(0, rows_modified) + max(0, rows_retrieved)


def describe_fault(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


@dataclass(frozen=True)
class ServerExecutor:
    """Runs one query against one server and converts every fault into data."""

    runner: QueryRunner

    def execute(self, query: str, server: str, credentials: ConnectionProfile, timeout_seconds: int) -> QueryOutcome:
        log.info("Executing query", extra={"server": server, "timeout": timeout_seconds, "sql_head": query[:300]})
        try:
            raw = self.runner(server, query, credentials, timeout_seconds)
        except Exception as e:
            log.warning("Query failed", extra={"server": server, "error": describe_fault(e)})
            return QueryOutcome.failed(server, describe_fault(e))

        impact = compute_impact(raw.rows_modified, len(raw.rows))
        log.info(
            "Query finished",
            extra={"server": server, "rows": len(raw.rows), "rows_modified": raw.rows_modified, "impact": impact},
        )
        return QueryOutcome.succeeded(server, raw.rows, impact)
