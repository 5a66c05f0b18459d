"""Tidy job: aggregate raw station readings into the hourly model table."""

from __future__ import annotations

import logging

import duckdb

from bike_pipeline.config import Config
from bike_pipeline.database import quote_identifier, table_columns
from bike_pipeline.exceptions import DataShapeError

logger = logging.getLogger("BikePipeline")

RAW_COLUMNS = ("station_id", "time", "num_bikes_available")
STATION_COLUMNS = ("station_id", "lat", "lon")

TIDY_COLUMNS = ("id", "hour", "date", "month", "day_of_week", "n_bikes", "lat", "lon")


def build_tidy_statements(config: Config) -> list[str]:
    """Build the drop/create statements that materialize the tidy table.

    Readings are averaged per (station, hour, date, month, weekday name)
    before station coordinates are left-joined, so stations missing from
    the metadata keep NULL lat/lon and metadata-only stations produce no
    rows. Buckets where every reading is NULL are dropped.

    Args:
        config: Pipeline configuration (table names).

    Returns:
        ``[drop_statement, create_statement]``.
    """
    raw = quote_identifier(config.raw_table)
    stations = quote_identifier(config.station_table)
    target = quote_identifier(config.model_table)

    drop = f"DROP TABLE IF EXISTS {target}"
    create = f"""
        CREATE TABLE {target} AS
        WITH hourly AS (
            SELECT
                station_id AS "id",
                hour("time") AS "hour",
                CAST("time" AS DATE) AS "date",
                month("time") AS "month",
                dayname("time") AS "day_of_week",
                avg(num_bikes_available) AS "n_bikes"
            FROM {raw}
            WHERE "time" IS NOT NULL
            GROUP BY 1, 2, 3, 4, 5
            HAVING count(num_bikes_available) > 0
        ),
        coords AS (
            SELECT station_id, any_value(lat) AS lat, any_value(lon) AS lon
            FROM {stations}
            GROUP BY station_id
        )
        SELECT
            h."id", h."hour", h."date", h."month", h."day_of_week", h."n_bikes",
            c.lat AS "lat", c.lon AS "lon"
        FROM hourly AS h
        LEFT JOIN coords AS c ON h."id" = c.station_id
        ORDER BY h."id", h."date", h."hour"
    """
    return [drop, create]


class TidyJob:
    """Replaces the tidy table from the raw readings and station metadata.

    Args:
        config: Pipeline configuration.
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    def check_sources(self, con: duckdb.DuckDBPyConnection) -> None:
        """Fail if a source table or one of its required columns is missing.

        Raises:
            DataShapeError: On a missing table or column.
        """
        for table, required in (
            (self._config.raw_table, RAW_COLUMNS),
            (self._config.station_table, STATION_COLUMNS),
        ):
            columns = table_columns(con, table)
            if not columns:
                raise DataShapeError(f"Source table {table!r} does not exist")
            missing = [c for c in required if c not in columns]
            if missing:
                raise DataShapeError(
                    f"Table {table!r} is missing column(s): {', '.join(missing)}"
                )

    def run(self, con: duckdb.DuckDBPyConnection) -> int:
        """Drop and recreate the tidy table.

        Args:
            con: Open connection holding the source tables.

        Returns:
            Number of rows in the new tidy table.
        """
        self.check_sources(con)
        target = self._config.model_table

        con.begin()
        try:
            for statement in build_tidy_statements(self._config):
                con.execute(statement)
        except Exception:
            con.rollback()
            raise
        con.commit()

        n_rows = con.execute(
            f"SELECT count(*) FROM {quote_identifier(target)}"
        ).fetchone()[0]
        logger.info("Materialized %s: %d rows", target, n_rows)
        return n_rows
