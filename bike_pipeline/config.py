"""Pipeline configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from bike_pipeline.exceptions import ConfigurationError


@dataclass
class Config:
    """Central configuration for the tidy and train jobs.

    Args:
        db_path: DuckDB database file holding raw and tidy tables.
        raw_table: Per-station time-series readings.
        station_table: Per-station static metadata (lat/lon).
        model_table: Materialized tidy table written by the tidy job.
        date_column: Column used for the train/test date windows.
        target_column: Prediction target.
        test_days: Number of most recent dates held out for evaluation.
        train_days: Days subtracted from the train end to get the train start.
        onehot_columns: Columns one-hot encoded before fitting.
        integer_columns: Columns converted to integer codes before fitting.
        estimator: ``"random_forest"`` (scikit-learn) or ``"lightgbm_rf"``.
        n_estimators: Number of trees.
        max_depth: Maximum tree depth (``None`` grows full trees).
        min_samples_leaf: Minimum rows per leaf.
        n_trials: Number of Optuna trials; ``0`` skips tuning.
        n_cv_splits: Number of folds for TimeSeriesSplit during tuning.
        random_seed: Reproducibility seed.
    """

    db_path: str = "bike.duckdb"
    raw_table: str = "bike_raw_data"
    station_table: str = "bike_station_info"
    model_table: str = "bike_model_data"

    date_column: str = "date"
    target_column: str = "n_bikes"

    # Date windows
    test_days: int = 2
    train_days: int = 10

    # Preprocessing
    onehot_columns: list[str] = field(default_factory=lambda: ["day_of_week"])
    integer_columns: list[str] = field(default_factory=lambda: ["id", "date"])

    # Model params
    estimator: str = "random_forest"
    n_estimators: int = 100
    max_depth: int | None = None
    min_samples_leaf: int = 1

    # Optimization params
    n_trials: int = 0
    n_cv_splits: int = 3

    random_seed: int = 42

    @classmethod
    def from_env(cls) -> Config:
        """Build a config, overriding the database path from ``BIKE_DB_PATH``."""
        return cls(db_path=os.environ.get("BIKE_DB_PATH", cls.db_path))

    def model_params(self) -> dict[str, Any]:
        return {
            "n_estimators": self.n_estimators,
            "max_depth": self.max_depth,
            "min_samples_leaf": self.min_samples_leaf,
        }


@dataclass
class PlatformConfig:
    """Connection settings for the model registry and hosting platform.

    Args:
        server_url: MLflow tracking/registry server.
        api_key: Token used to authenticate against the server.
        deploy_target: MLflow deployments target URI (e.g. ``databricks``).
        model_name: Logical name every published version is registered under.
        app_name: Fixed deployment name; redeploying updates it in place.
        title: Display title of the deployed endpoint.
        experiment_name: MLflow experiment holding the training runs.
        predict_options: Extra deployment config passed at deploy time.
    """

    server_url: str
    api_key: str
    deploy_target: str = "databricks"
    model_name: str = "bike_predict_model"
    app_name: str = "bike-predict-api"
    title: str = "Bikeshare Prediction Model API"
    experiment_name: str = "bike_predict"
    predict_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> PlatformConfig:
        """Read credentials from the environment.

        Raises:
            ConfigurationError: If the server URL or API key is not set.
        """
        server_url = os.environ.get("MLFLOW_TRACKING_URI")
        api_key = os.environ.get("MLFLOW_TRACKING_TOKEN")
        missing = [
            name
            for name, value in (
                ("MLFLOW_TRACKING_URI", server_url),
                ("MLFLOW_TRACKING_TOKEN", api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing environment variable(s): {', '.join(missing)}"
            )
        return cls(
            server_url=server_url,
            api_key=api_key,
            deploy_target=os.environ.get("BIKE_DEPLOY_TARGET", cls.deploy_target),
        )
