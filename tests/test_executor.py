from unittest.mock import MagicMock

import pandas as pd
import pytest

from distributed_query.db.utils import BackendResult, ConnectionProfile
from distributed_query.exceptions.errors import QueryTimeoutError
from distributed_query.execution.executor import ServerExecutor, compute_impact
from distributed_query.execution.models import FAILURE_PREFIX, OutcomeStatus


@pytest.mark.parametrize(
    "modified,retrieved,expected",
    [
        (-1, 0, 0),
        (-1, 4, 4),
        (5, 0, 5),
        # statement that both modifies and returns rows is counted twice
        (3, 3, 6),
        (-7, -7, 0),
    ],
)
def test_compute_impact(modified, retrieved, expected):
    assert compute_impact(modified, retrieved) == expected


def test_success_outcome_carries_rows_and_impact():
    runner = MagicMock(return_value=BackendResult(rows=pd.DataFrame({"X": [1, 2]}), rows_modified=2))
    profile = ConnectionProfile(integrated_security=False, user="ops", password="pw")

    outcome = ServerExecutor(runner).execute("UPDATE t SET x = 1 OUTPUT inserted.x", "S1", profile, 12)

    runner.assert_called_once_with("S1", "UPDATE t SET x = 1 OUTPUT inserted.x", profile, 12)
    assert outcome.status is OutcomeStatus.SUCCEEDED
    assert outcome.success
    assert outcome.server == "S1"
    assert outcome.row_count == 2
    assert outcome.impact_count == 4


def test_fault_becomes_failed_outcome():
    runner = MagicMock(side_effect=QueryTimeoutError("Query timeout expired"))

    outcome = ServerExecutor(runner).execute("SELECT 1", "S9", ConnectionProfile(), 1)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.message.startswith(FAILURE_PREFIX)
    assert "Query timeout expired" in outcome.message
    assert outcome.rows.empty
    assert outcome.impact_count == 0


def test_fault_without_message_uses_exception_name():
    runner = MagicMock(side_effect=ConnectionResetError())

    outcome = ServerExecutor(runner).execute("SELECT 1", "S9", ConnectionProfile(), 1)

    assert "ConnectionResetError" in outcome.message


def test_outcome_timestamp_is_set():
    runner = MagicMock(return_value=BackendResult(rows=pd.DataFrame()))
    outcome = ServerExecutor(runner).execute("SELECT 1", "S1", ConnectionProfile(), 1)
    assert outcome.timestamp.tzinfo is not None
