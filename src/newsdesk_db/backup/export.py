"""Per-table data exports

Writes one ``{table}_{stamp}.json`` or ``{table}_{stamp}.csv`` file per
non-empty table. Blob columns are written as hex strings and NULL as JSON
``null`` or an empty CSV field.
"""

import csv
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from newsdesk_db.backup.cancel import CancelToken, check_cancelled
from newsdesk_db.backup.dump import list_tables

EXPORT_FORMATS = ("json", "csv")


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


def read_rows(conn: sqlite3.Connection, table: str) -> List[Dict[str, Any]]:
    quoted = '"' + table.replace('"', '""') + '"'
    cursor = conn.execute(f"SELECT * FROM {quoted}")
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, (_plain(v) for v in row))) for row in cursor]


def _write_json(path: Path, rows: List[Dict[str, Any]]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(rows, f, indent=2, ensure_ascii=False)


def _write_csv(path: Path, rows: List[Dict[str, Any]]) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0]))
        writer.writeheader()
        writer.writerows(rows)


def export_tables(
    conn: sqlite3.Connection,
    fmt: str,
    output_dir: Path,
    stamp: str,
    tables: Optional[Sequence[str]] = None,
    cancel: Optional[CancelToken] = None,
) -> List[Path]:
    """Export each selected table; returns the files written

    Raises:
        ValueError: If ``fmt`` is unknown or a requested table does not exist
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    names = list_tables(conn, tables)
    missing = sorted(set(tables or ()) - set(names))
    if missing:
        raise ValueError(f"Unknown table(s): {', '.join(missing)}")

    output_dir.mkdir(parents=True, exist_ok=True)
    writer = _write_json if fmt == "json" else _write_csv
    written = []
    for table in names:
        check_cancelled(cancel)
        rows = read_rows(conn, table)
        if not rows:
            continue
        path = output_dir / f"{table}_{stamp}.{fmt}"
        writer(path, rows)
        written.append(path)
    return written
