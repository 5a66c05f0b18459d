"""Entry points for the tidy and train jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from bike_pipeline.config import Config, PlatformConfig
from bike_pipeline.data_utils import generate_synthetic_data, read_table
from bike_pipeline.database import connect
from bike_pipeline.publisher import ModelPublisher, PublishedModel
from bike_pipeline.splitter import DateWindows, DateWindowSplitter
from bike_pipeline.tidy import TidyJob
from bike_pipeline.trainer import ModelTrainer

logger = logging.getLogger("BikePipeline")


@dataclass
class TrainResult:
    windows: DateWindows
    params: dict[str, Any]
    metrics: dict[str, float]
    published: PublishedModel
    deployment: dict[str, Any]


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_tidy_job(config: Config) -> int:
    """Rebuild the tidy table. Returns its row count."""
    with connect(config.db_path) as con:
        return TidyJob(config).run(con)


def run_train_job(config: Config, platform: PlatformConfig) -> TrainResult:
    """Split, fit, evaluate, publish and deploy."""
    publisher = ModelPublisher(platform)

    with connect(config.db_path, read_only=True) as con:
        df = read_table(con, config.model_table)
    logger.info("Loaded %s: %d rows", config.model_table, df.height)

    splitter = DateWindowSplitter(config)
    windows = splitter.select_windows(df)
    train_df, test_df = splitter.split(df, windows)
    splitter.check_target_drift(
        train_df.get_column(config.target_column).to_numpy(),
        test_df.get_column(config.target_column).to_numpy(),
    )

    trainer = ModelTrainer(config)

    logger.info("=" * 60)
    logger.info("STAGE 1: Hyperparameter tuning")
    logger.info("=" * 60)
    params = {**config.model_params(), **trainer.tune_hyperparameters(train_df, splitter)}

    logger.info("=" * 60)
    logger.info("STAGE 2: Model training")
    logger.info("=" * 60)
    model = trainer.fit(train_df, params)

    logger.info("=" * 60)
    logger.info("EVALUATION on test window")
    logger.info("=" * 60)
    metrics = trainer.evaluate(model, test_df)

    logger.info("=" * 60)
    logger.info("PUBLISH and DEPLOY")
    logger.info("=" * 60)
    published = publisher.publish(
        model, trainer.input_sample(train_df), windows, metrics, params
    )
    deployment = publisher.deploy(published)

    logger.info("Pipeline complete.")
    return TrainResult(
        windows=windows,
        params=params,
        metrics=metrics,
        published=published,
        deployment=deployment,
    )


def main_tidy() -> None:
    setup_logging()
    run_tidy_job(Config.from_env())


def main_train() -> None:
    setup_logging()
    # Credentials are checked before any data is read.
    platform = PlatformConfig.from_env()
    run_train_job(Config.from_env(), platform)


def main_seed() -> None:
    """Fill the configured database with synthetic raw tables."""
    setup_logging()
    config = Config.from_env()
    with connect(config.db_path) as con:
        generate_synthetic_data(con, config)
