import csv

import duckdb
import pytest

from distributed_query import cli

YAML = """
app:
  log_level: WARNING
  log_file: {log_file}
dispatch:
  max_parallelism: 2
  timeout_seconds: 5
database:
  backend: duckdb
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for key in ("SERVERS", "DB_BACKEND", "MAX_PARALLELISM", "ADD_SERVER_COLUMN", "QUERY_TIMEOUT_SECONDS", "LOG_FILE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("APP_ENV", "cli")
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    (cfg_dir / "cli.yaml").write_text(YAML.format(log_file=(tmp_path / "logs" / "dq.log").as_posix()), encoding="utf-8")

    shards = []
    for name, n in (("a", 2), ("b", 1)):
        path = tmp_path / f"shard_{name}.duckdb"
        con = duckdb.connect(str(path))
        try:
            con.execute(f"CREATE TABLE t AS SELECT range AS id FROM range({n})")
        finally:
            con.close()
        shards.append(str(path))
    return tmp_path, str(cfg_dir), shards


def test_cli_runs_query_and_exports(workspace, capsys):
    tmp_path, cfg_dir, shards = workspace
    out = tmp_path / "out" / "rows.csv"
    log_out = tmp_path / "out" / "log.csv"

    code = cli.main([
        "SELECT id FROM t",
        "--config-dir", cfg_dir,
        "--servers", ",".join(shards),
        "--add-server-column",
        "--output", str(out),
        "--log-output", str(log_out),
    ])

    assert code == cli.EXIT_OK
    with open(out, encoding="utf-8", newline="") as fh:
        rows = list(csv.reader(fh, delimiter=";"))
    assert rows[0] == ["id", "SERVER"]
    assert len(rows) == 1 + 3
    assert log_out.exists()

    captured = capsys.readouterr()
    assert "Total impact: 3" in captured.out
    assert "Progress: 100%" in captured.err


def test_cli_reads_servers_file_and_reports_failures(workspace, capsys):
    tmp_path, cfg_dir, shards = workspace
    fleet = tmp_path / "fleet.txt"
    broken = (tmp_path / "missing" / "x.duckdb").as_posix()
    fleet.write_text(f"# shards\n{shards[0]}\n{broken}\n", encoding="utf-8")

    code = cli.main(["SELECT id FROM t", "--config-dir", cfg_dir, "--servers-file", str(fleet), "--quiet"])

    assert code == cli.EXIT_SERVER_FAILURES
    captured = capsys.readouterr()
    assert "failed" in captured.out
    assert broken in captured.err
    assert "Progress" not in captured.err


def test_cli_requires_query(workspace, capsys):
    _, cfg_dir, shards = workspace

    code = cli.main(["--config-dir", cfg_dir, "--servers", shards[0]])

    assert code == cli.EXIT_ERROR
    assert "query" in capsys.readouterr().err


def test_cli_query_file(workspace):
    tmp_path, cfg_dir, shards = workspace
    query = tmp_path / "q.sql"
    query.write_text("SELECT count(*) AS n FROM t", encoding="utf-8")

    code = cli.main(["--query-file", str(query), "--config-dir", cfg_dir, "--servers", shards[1], "--quiet"])

    assert code == cli.EXIT_OK


def test_cli_rejects_malformed_integer_setting(workspace, monkeypatch, capsys):
    _, cfg_dir, shards = workspace
    monkeypatch.setenv("MAX_PARALLELISM", "abc")

    code = cli.main(["SELECT id FROM t", "--config-dir", cfg_dir, "--servers", shards[0]])

    assert code == cli.EXIT_ERROR
    assert "MAX_PARALLELISM must be an integer" in capsys.readouterr().err
