from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import csv
import os
import pandas as pd

from distributed_query.exceptions.errors import ExportError
from distributed_query.execution.models import AggregateResult
from distributed_query.logging.logger import get_logger

log = get_logger("export.exporter")

DELIMITER = ";"


@dataclass(frozen=True)
class ExportPaths:
    csv_path: Optional[str] = None
    log_path: Optional[str] = None


def export_csv(df: pd.DataFrame, path: str) -> str:
    """Write a table as ';'-separated UTF-8 text.

    The header line holds the bare column names; every data field is quoted
    with embedded quotes doubled. Missing values are written as "". Any
    failure is raised as a single ExportError.
    """
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(DELIMITER.join(str(c) for c in df.columns) + os.linesep)
            df.to_csv(
                fh,
                sep=DELIMITER,
                header=False,
                index=False,
                na_rep="",
                quoting=csv.QUOTE_ALL,
                quotechar='"',
                doublequote=True,
                lineterminator=os.linesep,
            )
        log.info("Exported CSV", extra={"path": path, "rows": len(df), "columns": len(df.columns)})
    except Exception as e:
        log.exception("CSV export failed", extra={"path": path})
        raise ExportError(f"Error exporting CSV file: {e}") from e
    return path


def export_result(result: AggregateResult, out_dir: str, base_name: str) -> ExportPaths:
    """Export merged rows and the per-server log next to each other.

    Produces <base_name>.csv and <base_name>_log.csv in out_dir.
    """
    out = Path(out_dir)
    csv_path = export_csv(result.merged_rows, str(out / f"{base_name}.csv"))
    log_path = export_csv(result.log_frame(), str(out / f"{base_name}_log.csv"))
    return ExportPaths(csv_path=csv_path, log_path=log_path)
