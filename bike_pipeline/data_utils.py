from __future__ import annotations

import logging
from datetime import date

import duckdb
import numpy as np
import polars as pl

from bike_pipeline.config import Config
from bike_pipeline.database import quote_identifier

logger = logging.getLogger("BikePipeline")

# Capital Bikeshare's service area, roughly.
_CENTER_LAT = 38.90
_CENTER_LON = -77.03


def generate_synthetic_data(
    con: duckdb.DuckDBPyConnection,
    config: Config,
    n_stations: int = 20,
    n_days: int = 15,
    start: date = date(2024, 5, 1),
    interval_minutes: int = 60,
    null_fraction: float = 0.0,
    seed: int = 42,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Write synthetic raw readings and station metadata into ``con``.

    Occupancy follows a daily commute cycle per station plus noise. Used to
    seed a local database when no real feed is available.

    Args:
        con: Target connection; existing source tables are replaced.
        config: Pipeline configuration (table names).
        n_stations: Number of stations reporting readings.
        n_days: Number of consecutive days of readings.
        start: First day of readings.
        interval_minutes: Minutes between two readings of the same station.
        null_fraction: Fraction of readings with a missing bike count.
        seed: Random seed for reproducibility.

    Returns:
        ``(readings, stations)`` as written.
    """
    rng = np.random.default_rng(seed)
    station_ids = np.arange(1, n_stations + 1)
    capacity = rng.integers(10, 40, size=n_stations)
    phase = rng.uniform(0, 2 * np.pi, size=n_stations)

    steps_per_day = 24 * 60 // interval_minutes
    offsets = np.arange(n_days * steps_per_day) * interval_minutes
    base = np.datetime64(start.isoformat(), "m")
    times = base + offsets.astype("timedelta64[m]")

    hours = (offsets % (24 * 60)) / 60.0
    cycle = 0.5 + 0.4 * np.sin(2 * np.pi * hours[None, :] / 24 + phase[:, None])
    bikes = cycle * capacity[:, None] + rng.normal(0, 2, size=cycle.shape)
    bikes = np.clip(np.rint(bikes), 0, capacity[:, None]).astype(np.float64)

    if null_fraction > 0:
        mask = rng.random(bikes.shape) < null_fraction
        bikes[mask] = np.nan

    readings = pl.DataFrame({
        "station_id": np.repeat(station_ids, len(times)).astype(np.int64),
        "time": np.tile(times, n_stations).astype("datetime64[us]"),
        "num_bikes_available": bikes.ravel(),
    }).with_columns(pl.col("num_bikes_available").fill_nan(None))

    stations = pl.DataFrame({
        "station_id": station_ids.astype(np.int64),
        "lat": _CENTER_LAT + rng.normal(0, 0.03, size=n_stations),
        "lon": _CENTER_LON + rng.normal(0, 0.03, size=n_stations),
    })

    write_table(con, config.raw_table, readings)
    write_table(con, config.station_table, stations)
    logger.info(
        "Generated synthetic readings: %d stations x %d days (%d rows)",
        n_stations, n_days, readings.height,
    )
    return readings, stations


def write_table(con: duckdb.DuckDBPyConnection, table: str, df: pl.DataFrame) -> None:
    """Replace ``table`` with the contents of ``df``."""
    view = "__bike_pipeline_frame"
    con.register(view, df.to_arrow())
    try:
        con.execute(
            f"CREATE OR REPLACE TABLE {quote_identifier(table)} AS SELECT * FROM {view}"
        )
    finally:
        con.unregister(view)


def read_table(con: duckdb.DuckDBPyConnection, table: str) -> pl.DataFrame:
    return con.execute(f"SELECT * FROM {quote_identifier(table)}").pl()
