from __future__ import annotations

import logging
from typing import Any

import lightgbm as lgb
import numpy as np
import optuna
import pandas as pd
import polars as pl
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestRegressor
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, OrdinalEncoder

from bike_pipeline.config import Config
from bike_pipeline.exceptions import DataShapeError
from bike_pipeline.splitter import DateWindowSplitter

logger = logging.getLogger("BikePipeline")

# Integer code given to station ids and dates never seen during fitting.
UNKNOWN_CODE = -1


class ModelTrainer:
    def __init__(self, config: Config) -> None:
        self._config = config

    def prepare_features(self, df: pl.DataFrame) -> pd.DataFrame:
        """Drop the target and render dates as ISO strings.

        The result is also the schema the deployed endpoint expects.
        """
        missing = [
            c
            for c in (*self._config.onehot_columns, *self._config.integer_columns)
            if c not in df.columns
        ]
        if missing:
            raise DataShapeError(f"Missing feature column(s): {', '.join(missing)}")

        features = df.drop(self._config.target_column, strict=False)
        if features.schema[self._config.date_column] != pl.Utf8:
            features = features.with_columns(
                pl.col(self._config.date_column).cast(pl.Utf8)
            )
        return features.to_pandas()

    def _prepare_arrays(self, df: pl.DataFrame) -> tuple[pd.DataFrame, np.ndarray]:
        if self._config.target_column not in df.columns:
            raise DataShapeError(f"Missing target column {self._config.target_column!r}")
        X = self.prepare_features(df)
        y = df.get_column(self._config.target_column).to_numpy().astype(np.float64)
        return X, y

    def input_sample(self, df: pl.DataFrame) -> pd.DataFrame:
        """One row of model input, target removed."""
        return self.prepare_features(df.head(1))

    def build_pipeline(self, params: dict[str, Any] | None = None) -> Pipeline:
        """Preprocessing plus regressor, unfitted.

        Day of week is one-hot encoded; station id and date become integer
        codes, with unseen values mapped to ``UNKNOWN_CODE``.
        """
        params = {**self._config.model_params(), **(params or {})}
        preprocess = ColumnTransformer(
            [
                (
                    "onehot",
                    OneHotEncoder(handle_unknown="ignore", sparse_output=False),
                    self._config.onehot_columns,
                ),
                (
                    "integer",
                    OrdinalEncoder(
                        handle_unknown="use_encoded_value",
                        unknown_value=UNKNOWN_CODE,
                    ),
                    self._config.integer_columns,
                ),
            ],
            remainder="passthrough",
        )
        return Pipeline([
            ("preprocess", preprocess),
            ("model", self._build_estimator(params)),
        ])

    def _build_estimator(self, params: dict[str, Any]) -> Any:
        if self._config.estimator == "random_forest":
            return RandomForestRegressor(
                n_estimators=params["n_estimators"],
                max_depth=params["max_depth"],
                min_samples_leaf=params["min_samples_leaf"],
                random_state=self._config.random_seed,
                n_jobs=-1,
            )
        if self._config.estimator == "lightgbm_rf":
            return lgb.LGBMRegressor(
                boosting_type="rf",
                n_estimators=params["n_estimators"],
                max_depth=params["max_depth"] or -1,
                min_child_samples=params["min_samples_leaf"],
                subsample=0.632,
                subsample_freq=1,
                colsample_bytree=0.8,
                random_state=self._config.random_seed,
                verbosity=-1,
            )
        raise ValueError(f"Unknown estimator {self._config.estimator!r}")

    def tune_hyperparameters(
        self, train_df: pl.DataFrame, splitter: DateWindowSplitter
    ) -> dict[str, Any]:
        """Search forest hyperparameters with Optuna over time-ordered folds.

        Returns an empty dict when ``n_trials`` is 0.
        """
        if self._config.n_trials <= 0:
            logger.info("Tuning disabled (n_trials=0), using configured params")
            return {}

        ordered = train_df.sort([self._config.date_column, "id", "hour"])
        X, y = self._prepare_arrays(ordered)
        tscv = splitter.get_cv_splits()

        def objective(trial: optuna.Trial) -> float:
            params = {
                "n_estimators": trial.suggest_int("n_estimators", 50, 300),
                "max_depth": trial.suggest_int("max_depth", 4, 30),
                "min_samples_leaf": trial.suggest_int("min_samples_leaf", 1, 20),
            }
            rmse_scores: list[float] = []
            for train_idx, val_idx in tscv.split(X):
                pipeline = self.build_pipeline(params)
                pipeline.fit(X.iloc[train_idx], y[train_idx])
                y_pred = pipeline.predict(X.iloc[val_idx])
                rmse_scores.append(
                    float(np.sqrt(mean_squared_error(y[val_idx], y_pred)))
                )
            return float(np.mean(rmse_scores))

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        study = optuna.create_study(
            direction="minimize",
            study_name="bike_availability_tuning",
            sampler=optuna.samplers.TPESampler(seed=self._config.random_seed),
        )
        study.optimize(objective, n_trials=self._config.n_trials)

        logger.info(
            "Best trial RMSE=%.4f params=%s",
            study.best_value, study.best_trial.params,
        )
        return study.best_trial.params

    def fit(
        self, train_df: pl.DataFrame, params: dict[str, Any] | None = None
    ) -> Pipeline:
        X, y = self._prepare_arrays(train_df)
        pipeline = self.build_pipeline(params)
        pipeline.fit(X, y)
        logger.info(
            "Fitted %s on %d rows, %d features",
            self._config.estimator, X.shape[0], X.shape[1],
        )
        return pipeline

    def predict(self, model: Pipeline, df: pl.DataFrame) -> np.ndarray:
        """Predict ``n_bikes`` for tidy rows (target column optional)."""
        return model.predict(self.prepare_features(df))

    def evaluate(self, model: Pipeline, test_df: pl.DataFrame) -> dict[str, float]:
        """Out-of-sample RMSE, MAE and R² on the test window."""
        if self._config.target_column not in test_df.columns:
            raise DataShapeError(f"Missing target column {self._config.target_column!r}")
        y_test = test_df.get_column(self._config.target_column).to_numpy().astype(np.float64)
        y_pred = self.predict(model, test_df)

        metrics = {
            "rmse": float(np.sqrt(mean_squared_error(y_test, y_pred))),
            "mae": float(mean_absolute_error(y_test, y_pred)),
            "r2": float(r2_score(y_test, y_pred)),
        }
        for name, value in metrics.items():
            logger.info("  %s: %.4f", name.upper(), value)
        return metrics
