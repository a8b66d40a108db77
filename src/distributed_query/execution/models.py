from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

import pandas as pd

from distributed_query.db.utils import ConnectionProfile
from distributed_query.exceptions.errors import ConfigurationError

NO_SERVERS_MESSAGE = "no servers selected"
CANCELLED_MESSAGE = "Cancelled by user."
FAILURE_PREFIX = "Failed to execute query:"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QueryRequest:
    text: str
    timeout_seconds: Optional[int] = None
    credentials: ConnectionProfile = field(default_factory=ConnectionProfile)


@dataclass(frozen=True)
class DispatchConfig:
    """Per-call dispatch options.

    timeout_seconds is used when the QueryRequest does not carry its own; 0
    disables the timeout. count_failed_impact=True adds the impact of failed
    outcomes to the total as well (the historical behaviour); False counts
    successful outcomes only.
    """

    max_parallelism: int = 4
    add_server_column: bool = False
    timeout_seconds: int = 30
    server_column_name: str = "SERVER"
    count_failed_impact: bool = True

    def validate(self) -> None:
        if not isinstance(self.max_parallelism, int) or self.max_parallelism < 1:
            raise ConfigurationError(f"max_parallelism must be >= 1, got {self.max_parallelism!r}")
        if not isinstance(self.timeout_seconds, int) or self.timeout_seconds < 0:
            raise ConfigurationError(f"timeout_seconds must be >= 0, got {self.timeout_seconds!r}")
        if self.add_server_column and not (self.server_column_name or "").strip():
            raise ConfigurationError("server_column_name must not be empty when add_server_column is set")


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, eq=False)
class QueryOutcome:
    """Result of one server in one distribution call. Never mutated."""

    server: str
    status: OutcomeStatus
    message: str
    rows: pd.DataFrame = field(default_factory=pd.DataFrame, repr=False)
    impact_count: int = 0
    timestamp: datetime = field(default_factory=_now)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @classmethod
    def succeeded(cls, server: str, rows: pd.DataFrame, impact_count: int) -> "QueryOutcome":
        return cls(
            server=server,
            status=OutcomeStatus.SUCCEEDED,
            message=f"Query executed successfully. {len(rows)} row(s) returned, impact {impact_count}.",
            rows=rows,
            impact_count=impact_count,
        )

    @classmethod
    def failed(cls, server: str, reason: str, impact_count: int = 0) -> "QueryOutcome":
        return cls(
            server=server,
            status=OutcomeStatus.FAILED,
            message=f"{FAILURE_PREFIX} {reason}",
            impact_count=impact_count,
        )

    @classmethod
    def cancelled(cls, server: str) -> "QueryOutcome":
        return cls(server=server, status=OutcomeStatus.CANCELLED, message=CANCELLED_MESSAGE)

    @classmethod
    def no_servers(cls) -> "QueryOutcome":
        return cls(server="", status=OutcomeStatus.FAILED, message=NO_SERVERS_MESSAGE)


@dataclass(frozen=True, eq=False)
class AggregateResult:
    merged_rows: pd.DataFrame
    total_impact: int
    log: Tuple[QueryOutcome, ...]

    @property
    def succeeded(self) -> Tuple[QueryOutcome, ...]:
        return tuple(o for o in self.log if o.success)

    @property
    def failed(self) -> Tuple[QueryOutcome, ...]:
        return tuple(o for o in self.log if not o.success)

    @property
    def all_succeeded(self) -> bool:
        return bool(self.log) and all(o.success for o in self.log)

    def error_summary(self) -> str:
        """One line per unsuccessful server, in completion order."""
        lines = []
        for o in self.failed:
            lines.append(f"{o.message} {o.server}".rstrip())
        return "\n".join(lines)

    def log_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "server": o.server,
                    "success": o.success,
                    "status": o.status.value,
                    "message": o.message,
                    "impact": o.impact_count,
                    "rows": o.row_count,
                    "timestamp": o.timestamp.isoformat(),
                }
                for o in self.log
            ],
            columns=["server", "success", "status", "message", "impact", "rows", "timestamp"],
        )
