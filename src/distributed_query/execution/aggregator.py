from __future__ import annotations

from dataclasses import replace
import threading
from typing import List

import pandas as pd

from distributed_query.execution.executor import describe_fault
from distributed_query.execution.models import AggregateResult, DispatchConfig, QueryOutcome
from distributed_query.execution.progress import ProgressReporter, completion_percent
from distributed_query.logging.logger import get_logger


log = get_logger("execution.aggregator")


class ResultAggregator:
    """Thread-safe accumulator shared by all workers of one distribution call.

    absorb() and result() run under a single lock. Absorbing merges the
    outcome's rows (column-name union, first successful outcome sets the
    leading column order), updates the impact total, appends the outcome to
    the log and reports progress, so progress values are strictly ordered.
    Successful results without rows still contribute their columns.
    """

    def __init__(self, config: DispatchConfig, total_units: int, progress: ProgressReporter | None = None):
        self.config = config
        self.total_units = total_units
        self.progress = progress or ProgressReporter()

        self._lock = threading.Lock()
        self._columns: List = []
        self._parts: List[pd.DataFrame] = []
        self._log: List[QueryOutcome] = []
        self._total_impact = 0

    def _tag_server(self, outcome: QueryOutcome) -> QueryOutcome:
        column = self.config.server_column_name
        if column in outcome.rows.columns:
            # Same failure the merge would hit later; keep the impact already computed.
            return QueryOutcome.failed(
                outcome.server,
                f"column '{column}' already exists in the result set",
                impact_count=outcome.impact_count,
            )
        tagged = outcome.rows.copy()
        tagged[column] = outcome.server
        return replace(outcome, rows=tagged)

    def _merge(self, outcome: QueryOutcome) -> QueryOutcome:
        if outcome.row_count > 0 and self.config.add_server_column:
            outcome = self._tag_server(outcome)
        if not outcome.success:
            return outcome

        known = set(self._columns)
        self._columns.extend(c for c in outcome.rows.columns if c not in known)
        if outcome.row_count > 0:
            self._parts.append(outcome.rows)
        return outcome

    def absorb(self, outcome: QueryOutcome) -> QueryOutcome:
        """Record one terminal outcome and return the outcome actually logged.

        A fault while merging turns the outcome into a failure; it is still
        logged, so every unit keeps exactly one log entry.
        """
        with self._lock:
            if outcome.success:
                try:
                    outcome = self._merge(outcome)
                except Exception as e:
                    log.exception("Could not merge result", extra={"server": outcome.server})
                    outcome = QueryOutcome.failed(outcome.server, describe_fault(e), impact_count=outcome.impact_count)

            if outcome.success or self.config.count_failed_impact:
                self._total_impact += outcome.impact_count

            self._log.append(outcome)
            completed = len(self._log)
            self.progress.report(completion_percent(completed, self.total_units))

        log.debug(
            "Outcome absorbed",
            extra={"server": outcome.server, "status": outcome.status.value, "completed": completed, "total": self.total_units},
        )
        return outcome

    @property
    def completed(self) -> int:
        with self._lock:
            return len(self._log)

    def result(self) -> AggregateResult:
        with self._lock:
            if not self._parts:
                merged = pd.DataFrame(columns=list(self._columns))
            elif len(self._parts) == 1:
                merged = self._parts[0].reset_index(drop=True)
            else:
                merged = pd.concat(self._parts, ignore_index=True, sort=False)
            if list(merged.columns) != self._columns:
                merged = merged.reindex(columns=self._columns)
            return AggregateResult(merged_rows=merged, total_impact=self._total_impact, log=tuple(self._log))
