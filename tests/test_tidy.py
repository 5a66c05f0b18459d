"""Tests for the tidy job aggregation."""

import polars as pl
import pytest
from polars.testing import assert_frame_equal

from bike_pipeline.data_utils import read_table
from bike_pipeline.exceptions import DataShapeError
from bike_pipeline.tidy import TIDY_COLUMNS, TidyJob, build_tidy_statements


@pytest.fixture
def small_con(con):
    con.execute(
        "CREATE TABLE bike_raw_data (station_id INTEGER, time TIMESTAMP, num_bikes_available DOUBLE)"
    )
    con.execute(
        """
        INSERT INTO bike_raw_data VALUES
            (1, '2024-05-06 08:05:00', 4),
            (1, '2024-05-06 08:35:00', 6),
            (1, '2024-05-06 08:50:00', NULL),
            (1, '2024-05-06 09:10:00', NULL),
            (1, '2024-05-06 09:40:00', NULL),
            (1, '2024-05-07 08:15:00', 10),
            (2, '2024-05-06 08:20:00', 3),
            (7, '2024-05-06 08:20:00', 8)
        """
    )
    con.execute("CREATE TABLE bike_station_info (station_id INTEGER, lat DOUBLE, lon DOUBLE)")
    con.execute(
        """
        INSERT INTO bike_station_info VALUES
            (1, 38.9, -77.0),
            (2, 38.8, -77.1),
            (3, 38.7, -77.2)
        """
    )
    return con


def _tidy(con, config):
    TidyJob(config).run(con)
    return read_table(con, config.model_table)


def test_statements_drop_then_create(config):
    drop, create = build_tidy_statements(config)
    assert drop == 'DROP TABLE IF EXISTS "bike_model_data"'
    assert create.strip().startswith('CREATE TABLE "bike_model_data" AS')


def test_schema(small_con, config):
    df = _tidy(small_con, config)
    assert tuple(df.columns) == TIDY_COLUMNS


def test_mean_ignores_missing_readings(small_con, config):
    df = _tidy(small_con, config)
    row = df.filter(
        (pl.col("id") == 1) & (pl.col("hour") == 8) & (pl.col("date") == pl.date(2024, 5, 6))
    )
    assert row.height == 1
    assert row["n_bikes"][0] == pytest.approx(5.0)
    assert row["month"][0] == 5
    assert row["day_of_week"][0] == "Monday"


def test_all_missing_bucket_is_absent(small_con, config):
    df = _tidy(small_con, config)
    assert df.filter((pl.col("id") == 1) & (pl.col("hour") == 9)).height == 0


def test_metadata_only_station_has_no_rows(small_con, config):
    df = _tidy(small_con, config)
    assert df.filter(pl.col("id") == 3).height == 0


def test_unknown_station_keeps_null_coordinates(small_con, config):
    df = _tidy(small_con, config)
    row = df.filter(pl.col("id") == 7)
    assert row.height == 1
    assert row["lat"][0] is None
    assert row["lon"][0] is None


def test_unique_per_station_hour_date(tidy_df):
    assert tidy_df.height == 20 * 15 * 24
    assert tidy_df.select(["id", "hour", "date"]).is_duplicated().sum() == 0


def test_matches_mean_of_raw_readings(seeded_con, config, tidy_df):
    raw = read_table(seeded_con, config.raw_table)
    expected = (
        raw.with_columns(
            pl.col("time").dt.hour().cast(pl.Int64).alias("hour"),
            pl.col("time").dt.date().alias("date"),
        )
        .group_by(["station_id", "hour", "date"])
        .agg(pl.col("num_bikes_available").mean().alias("expected"))
        .rename({"station_id": "id"})
    )
    joined = tidy_df.join(expected, on=["id", "hour", "date"], how="inner")
    assert joined.height == tidy_df.height
    assert (joined["n_bikes"] - joined["expected"]).abs().max() < 1e-9


def test_rerun_is_identical(seeded_con, config):
    first = _tidy(seeded_con, config)
    second = _tidy(seeded_con, config)
    assert_frame_equal(first, second, check_exact=True)


def test_rerun_replaces_stale_table(small_con, config):
    small_con.execute("CREATE TABLE bike_model_data AS SELECT 1 AS stale")
    df = _tidy(small_con, config)
    assert "stale" not in df.columns


def test_missing_source_table(con, config):
    con.execute("CREATE TABLE bike_station_info (station_id INTEGER, lat DOUBLE, lon DOUBLE)")
    with pytest.raises(DataShapeError, match="bike_raw_data"):
        TidyJob(config).run(con)


def test_missing_source_column(con, config):
    con.execute("CREATE TABLE bike_raw_data (station_id INTEGER, time TIMESTAMP)")
    con.execute("CREATE TABLE bike_station_info (station_id INTEGER, lat DOUBLE, lon DOUBLE)")
    with pytest.raises(DataShapeError, match="num_bikes_available"):
        TidyJob(config).run(con)
