"""Logical SQL dump of the news store.

Format: for each table, sorted by name, the table's ``CREATE TABLE``
statement terminated by ``;``, then one ``INSERT`` per row in rowid order
(all-columns order for ``WITHOUT ROWID`` tables), then a blank line.
Output for an unchanged database is byte-identical between runs.
"""

import math
import re
import sqlite3
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from newsdesk_db.backup.cancel import CancelToken, check_cancelled

_WITHOUT_ROWID = re.compile(r"\)\s*WITHOUT\s+ROWID\s*$", re.IGNORECASE)
_CREATE_TABLE = re.compile(
    r'^\s*CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?("(?:[^"]|"")+"|\[[^\]]+\]|`[^`]+`|\w+)',
    re.IGNORECASE,
)

# Rows between cancellation checks
_CANCEL_EVERY = 500


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _unquote_identifier(token: str) -> str:
    if token[0] == '"':
        return token[1:-1].replace('""', '"')
    if token[0] in "[`":
        return token[1:-1]
    return token


def format_value(value) -> str:
    """Render a Python value as a SQL literal"""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return repr(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NULL"
        if math.isinf(value):
            return "1e999" if value > 0 else "-1e999"
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "X'" + bytes(value).hex().upper() + "'"
    return "'" + str(value).replace("'", "''") + "'"


def list_tables(conn: sqlite3.Connection, tables: Optional[Sequence[str]] = None) -> List[str]:
    """User tables sorted by name, optionally restricted to ``tables``"""
    rows = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    ).fetchall()
    names = [row[0] for row in rows]
    if tables:
        allowed = set(tables)
        names = [n for n in names if n in allowed]
    return names


def iter_dump(
    conn: sqlite3.Connection,
    tables: Optional[Sequence[str]] = None,
    cancel: Optional[CancelToken] = None,
) -> Iterator[str]:
    """Yield the dump text chunk by chunk"""
    for table in list_tables(conn, tables):
        check_cancelled(cancel)
        create_sql = conn.execute(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()[0]
        yield f"{create_sql};\n"

        quoted = quote_identifier(table)
        columns = [row[1] for row in conn.execute(f"PRAGMA table_info({quoted})")]
        column_list = ", ".join(quote_identifier(c) for c in columns)
        if _WITHOUT_ROWID.search(create_sql):
            order_by = ", ".join(str(i + 1) for i in range(len(columns)))
        else:
            order_by = "rowid"

        cursor = conn.execute(f"SELECT {column_list} FROM {quoted} ORDER BY {order_by}")
        for count, row in enumerate(cursor, start=1):
            if count % _CANCEL_EVERY == 0:
                check_cancelled(cancel)
            values = ", ".join(format_value(v) for v in row)
            yield f"INSERT INTO {quoted} ({column_list}) VALUES ({values});\n"
        yield "\n"


def write_dump(
    conn: sqlite3.Connection,
    output: Path,
    tables: Optional[Sequence[str]] = None,
    cancel: Optional[CancelToken] = None,
) -> int:
    """Write the dump to ``output`` and return the number of tables dumped"""
    with open(output, "w", encoding="utf-8", newline="\n") as f:
        for chunk in iter_dump(conn, tables, cancel):
            f.write(chunk)
    return len(list_tables(conn, tables))


def split_statements(sql_text: str) -> Iterator[str]:
    """Split dump text into complete SQL statements.

    Statements may span lines when a string literal contains a newline.
    """
    buffer = ""
    for line in sql_text.splitlines(keepends=True):
        if not buffer and not line.strip():
            continue
        buffer += line
        if sqlite3.complete_statement(buffer):
            yield buffer.strip()
            buffer = ""
    if buffer.strip():
        raise ValueError("Dump ends with an incomplete statement")


def apply_dump(conn: sqlite3.Connection, sql_text: str, replace_existing: bool = True) -> int:
    """Replay a dump into ``conn`` inside one transaction.

    With ``replace_existing`` every table created by the dump is dropped
    first, so replaying over a live database reproduces the dumped contents.

    Returns:
        Number of statements executed
    """
    statements = list(split_statements(sql_text))
    executed = 0
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN")
    try:
        for statement in statements:
            if replace_existing:
                match = _CREATE_TABLE.match(statement)
                if match:
                    name = _unquote_identifier(match.group(1))
                    conn.execute(f"DROP TABLE IF EXISTS {quote_identifier(name)}")
            conn.execute(statement)
            executed += 1
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        raise
    return executed
