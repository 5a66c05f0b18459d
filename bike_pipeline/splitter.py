"""Chronological train/test date windows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

import numpy as np
import polars as pl
from sklearn.model_selection import TimeSeriesSplit

from bike_pipeline.config import Config
from bike_pipeline.exceptions import ConfigurationError, InsufficientDataError

logger = logging.getLogger("BikePipeline")


@dataclass(frozen=True)
class DateWindows:
    """Inclusive date bounds of the train and test windows."""

    train_start: date
    train_end: date
    test_start: date
    test_end: date

    @property
    def train_dates(self) -> str:
        return f"{self.train_start.isoformat()}/{self.train_end.isoformat()}"

    @property
    def test_dates(self) -> str:
        return f"{self.test_start.isoformat()}/{self.test_end.isoformat()}"


class DateWindowSplitter:
    """Date-based splitting to prevent data leakage.

    The ``test_days`` most recent dates form the test window. The train
    window ends on the next most recent date and starts ``train_days``
    calendar days before that, so the two windows touch without a gap.

    Args:
        config: Pipeline configuration.
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    def select_windows(self, df: pl.DataFrame) -> DateWindows:
        """Compute the window bounds from the distinct dates in ``df``.

        Both bounds are inclusive, so with complete data the train window
        spans ``train_days + 1`` calendar dates, ending on the day before
        the test window starts.

        Raises:
            ConfigurationError: If ``test_days < 1`` or ``train_days < 0``.
            InsufficientDataError: If there are not more than ``test_days``
                distinct dates.
        """
        k = self._config.test_days
        if k < 1 or self._config.train_days < 0:
            raise ConfigurationError(
                f"Invalid windows: test_days={k} (must be >= 1), "
                f"train_days={self._config.train_days} (must be >= 0)"
            )
        dates = (
            df.get_column(self._config.date_column)
            .drop_nulls()
            .unique()
            .sort(descending=True)
            .to_list()
        )
        if len(dates) < k + 1:
            raise InsufficientDataError(
                f"Need at least {k + 1} distinct dates, found {len(dates)}"
            )
        if len(dates) < k + self._config.train_days + 1:
            logger.warning(
                "Only %d distinct dates; train window will be partially empty",
                len(dates),
            )

        train_end = dates[k]
        return DateWindows(
            train_start=train_end - timedelta(days=self._config.train_days),
            train_end=train_end,
            test_start=dates[k - 1],
            test_end=dates[0],
        )

    def split(
        self, df: pl.DataFrame, windows: DateWindows | None = None
    ) -> tuple[pl.DataFrame, pl.DataFrame]:
        """Filter ``df`` into deduplicated train and test frames.

        Args:
            df: Tidy table.
            windows: Precomputed bounds; selected from ``df`` when omitted.

        Returns:
            (train_df, test_df) tuple.

        Raises:
            InsufficientDataError: If either window holds no rows.
        """
        if windows is None:
            windows = self.select_windows(df)
        date_col = pl.col(self._config.date_column)

        train_df = self._window(
            df, date_col.is_between(windows.train_start, windows.train_end)
        )
        test_df = self._window(
            df, date_col.is_between(windows.test_start, windows.test_end)
        )
        if train_df.height == 0 or test_df.height == 0:
            raise InsufficientDataError(
                f"Empty window: train={train_df.height} rows, test={test_df.height} rows"
            )

        logger.info(
            "Train period: %s to %s (%d rows)",
            windows.train_start, windows.train_end, train_df.height,
        )
        logger.info(
            "Test period: %s to %s (%d rows)",
            windows.test_start, windows.test_end, test_df.height,
        )
        return train_df, test_df

    def _window(self, df: pl.DataFrame, predicate: pl.Expr) -> pl.DataFrame:
        return (
            df.filter(predicate)
            .unique(maintain_order=True)
            .sort([self._config.date_column, "id", "hour"])
        )

    def get_cv_splits(self) -> TimeSeriesSplit:
        """Return a scikit-learn TimeSeriesSplit for tuning on the train window."""
        return TimeSeriesSplit(n_splits=self._config.n_cv_splits)

    @staticmethod
    def check_target_drift(y_train: np.ndarray, y_test: np.ndarray) -> float:
        """Log a warning if train/test target means differ by more than 20%.

        Returns:
            Drift in percent (``0.0`` when the train mean is zero).
        """
        mean_train = float(np.mean(y_train))
        mean_test = float(np.mean(y_test))
        if mean_train == 0:
            return 0.0
        drift_pct = abs(mean_train - mean_test) / abs(mean_train) * 100
        logger.info(
            "Target mean: train=%.4f, test=%.4f (drift=%.1f%%)",
            mean_train, mean_test, drift_pct,
        )
        if drift_pct > 20:
            logger.warning("Target drift %.1f%% exceeds 20%% threshold!", drift_pct)
        return drift_pct
