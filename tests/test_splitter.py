"""Tests for the train/test date windows."""

from datetime import date, timedelta

import numpy as np
import polars as pl
import pytest

from bike_pipeline.config import Config
from bike_pipeline.exceptions import ConfigurationError, InsufficientDataError
from bike_pipeline.splitter import DateWindows, DateWindowSplitter


def _frame(n_days, start=date(2024, 5, 1), stations=(1, 2)):
    rows = [
        {"id": s, "hour": h, "date": start + timedelta(days=d), "n_bikes": float(s + h)}
        for d in range(n_days)
        for s in stations
        for h in (8, 17)
    ]
    return pl.DataFrame(rows)


def test_default_windows(config, tidy_df):
    windows = DateWindowSplitter(config).select_windows(tidy_df)
    assert windows == DateWindows(
        train_start=date(2024, 5, 3),
        train_end=date(2024, 5, 13),
        test_start=date(2024, 5, 14),
        test_end=date(2024, 5, 15),
    )
    assert windows.train_dates == "2024-05-03/2024-05-13"
    assert windows.test_dates == "2024-05-14/2024-05-15"


@pytest.mark.parametrize("test_days,train_days", [(1, 3), (2, 10), (3, 5)])
def test_windows_are_disjoint_and_adjacent(test_days, train_days):
    config = Config(test_days=test_days, train_days=train_days)
    df = _frame(test_days + train_days + 4)
    splitter = DateWindowSplitter(config)

    windows = splitter.select_windows(df)
    train_df, test_df = splitter.split(df, windows)

    train_dates = set(train_df["date"].to_list())
    test_dates = set(test_df["date"].to_list())
    assert not train_dates & test_dates
    assert max(train_dates) < min(test_dates)
    assert min(test_dates) - max(train_dates) == timedelta(days=1)
    assert len(test_dates) == test_days
    assert windows.train_end - windows.train_start == timedelta(days=train_days)


def test_split_drops_duplicate_rows(config):
    df = _frame(15)
    train_df, test_df = DateWindowSplitter(config).split(pl.concat([df, df]))
    assert test_df.height == 2 * 2 * 2
    assert train_df.is_duplicated().sum() == 0


def test_too_few_dates(config):
    with pytest.raises(InsufficientDataError, match="at least 3"):
        DateWindowSplitter(config).select_windows(_frame(2))


def test_empty_train_window(config):
    df = _frame(3)
    windows = DateWindows(
        train_start=date(2023, 1, 1),
        train_end=date(2023, 1, 10),
        test_start=date(2024, 5, 2),
        test_end=date(2024, 5, 3),
    )
    with pytest.raises(InsufficientDataError, match="Empty window"):
        DateWindowSplitter(config).split(df, windows)


def test_short_history_still_splits(config):
    train_df, test_df = DateWindowSplitter(config).split(_frame(5))
    assert train_df["date"].n_unique() == 3
    assert test_df["date"].n_unique() == 2


def test_target_drift():
    assert DateWindowSplitter.check_target_drift(np.array([10.0]), np.array([13.0])) == pytest.approx(30.0)
    assert DateWindowSplitter.check_target_drift(np.array([0.0]), np.array([5.0])) == 0.0


@pytest.mark.parametrize("test_days,train_days", [(0, 10), (-1, 10), (2, -1)])
def test_invalid_window_sizes(test_days, train_days):
    splitter = DateWindowSplitter(Config(test_days=test_days, train_days=train_days))
    with pytest.raises(ConfigurationError, match="Invalid windows"):
        splitter.select_windows(_frame(15))


def test_train_window_spans_train_days_plus_one(config):
    train_df, _ = DateWindowSplitter(config).split(_frame(15))
    assert train_df["date"].n_unique() == config.train_days + 1
