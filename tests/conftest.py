import threading
import time

import pandas as pd
import pytest

from distributed_query.db.utils import BackendResult
from distributed_query.execution.dispatcher import Dispatcher
from distributed_query.execution.executor import ServerExecutor
from distributed_query.execution.models import DispatchConfig, QueryRequest


class FakeFleet:
    """Scripted QueryRunner.

    Returns a canned BackendResult (or raises a canned error) per server and
    records every call plus the peak number of concurrent executions.
    """

    def __init__(self, results=None, errors=None, delay=0.0, on_call=None):
        self.results = results or {}
        self.errors = errors or {}
        self.delay = delay
        self.on_call = on_call
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def __call__(self, server, query, credentials, timeout_seconds):
        with self._lock:
            self.calls.append({"server": server, "query": query, "credentials": credentials, "timeout": timeout_seconds})
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call is not None:
                self.on_call(server)
            if self.delay:
                time.sleep(self.delay)
            if server in self.errors:
                raise self.errors[server]
            if server in self.results:
                return self.results[server]
            return BackendResult(rows=pd.DataFrame({"X": [1]}), rows_modified=-1)
        finally:
            with self._lock:
                self.in_flight -= 1

    @property
    def called_servers(self):
        return [c["server"] for c in self.calls]


@pytest.fixture
def make_fleet():
    return FakeFleet


@pytest.fixture
def dispatcher_for():
    def _build(fleet):
        return Dispatcher(executor=ServerExecutor(runner=fleet))
    return _build


@pytest.fixture
def request_for():
    def _build(text="SELECT 1 AS X", timeout_seconds=None):
        return QueryRequest(text=text, timeout_seconds=timeout_seconds)
    return _build


@pytest.fixture
def config():
    return DispatchConfig(max_parallelism=4, add_server_column=False, timeout_seconds=15)
