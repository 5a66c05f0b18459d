"""DuckDB connection handling."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import duckdb

logger = logging.getLogger("BikePipeline")


@contextmanager
def connect(path: str, read_only: bool = False) -> Iterator[duckdb.DuckDBPyConnection]:
    """Open a DuckDB connection that is closed when the block exits.

    Args:
        path: Database file, or ``":memory:"``.
        read_only: Open the file without write access.

    Yields:
        The open connection.
    """
    con = duckdb.connect(database=path, read_only=read_only)
    logger.info("Connected to %s", path)
    try:
        yield con
    finally:
        con.close()
        logger.info("Closed connection to %s", path)


def table_columns(con: duckdb.DuckDBPyConnection, table: str) -> set[str]:
    """Return the column names of ``table`` (empty if it does not exist)."""
    rows = con.execute(
        "SELECT column_name FROM information_schema.columns WHERE table_name = ?",
        [table],
    ).fetchall()
    return {row[0] for row in rows}


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'
