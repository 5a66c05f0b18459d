from datetime import date

import duckdb
import pytest

from bike_pipeline.config import Config, PlatformConfig
from bike_pipeline.data_utils import generate_synthetic_data, read_table
from bike_pipeline.tidy import TidyJob


@pytest.fixture
def config():
    return Config(db_path=":memory:", n_estimators=20)


@pytest.fixture
def con():
    con = duckdb.connect(":memory:")
    yield con
    con.close()


@pytest.fixture
def seeded_con(con, config):
    generate_synthetic_data(con, config, n_stations=20, n_days=15, start=date(2024, 5, 1))
    return con


@pytest.fixture
def tidy_df(seeded_con, config):
    TidyJob(config).run(seeded_con)
    return read_table(seeded_con, config.model_table)


@pytest.fixture
def platform(monkeypatch):
    monkeypatch.setenv("MLFLOW_TRACKING_TOKEN", "outer-token")
    monkeypatch.delenv("DATABRICKS_TOKEN", raising=False)
    return PlatformConfig(server_url="http://mlflow.test", api_key="test-token")
