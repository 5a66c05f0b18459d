"""Publishing fitted models to the MLflow registry and deploying them."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import mlflow
import mlflow.sklearn
import pandas as pd
from mlflow.deployments import get_deploy_client
from mlflow.tracking import MlflowClient
from sklearn.pipeline import Pipeline

from bike_pipeline.config import PlatformConfig
from bike_pipeline.splitter import DateWindows

logger = logging.getLogger("BikePipeline")

_TOKEN_VARIABLES = ("MLFLOW_TRACKING_TOKEN", "DATABRICKS_TOKEN")


@dataclass(frozen=True)
class PublishedModel:
    """A registered, immutable model version."""

    name: str
    version: str
    run_id: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def model_uri(self) -> str:
        return f"models:/{self.name}/{self.version}"


def metadata_for(windows: DateWindows) -> dict[str, str]:
    return {"train_dates": windows.train_dates, "test_dates": windows.test_dates}


def _is_databricks(target: str) -> bool:
    return target == "databricks" or target.startswith("databricks:")


class ModelPublisher:
    """Writes model versions to the registry and points the endpoint at them.

    Args:
        platform: Server, credentials and fixed names to publish under.
    """

    def __init__(self, platform: PlatformConfig) -> None:
        self._platform = platform

    @contextmanager
    def _authenticated(self) -> Iterator[None]:
        """Point MLflow at the platform with the configured key for one call.

        MLflow and the Databricks SDK read tokens only from the environment,
        so the key is set there for the duration of the block and the
        previous values are restored afterwards.
        """
        previous = {name: os.environ.get(name) for name in _TOKEN_VARIABLES}
        for name in _TOKEN_VARIABLES:
            os.environ[name] = self._platform.api_key
        mlflow.set_tracking_uri(self._platform.server_url)
        mlflow.set_registry_uri(self._platform.server_url)
        try:
            yield
        finally:
            for name, value in previous.items():
                if value is None:
                    os.environ.pop(name, None)
                else:
                    os.environ[name] = value

    def publish(
        self,
        model: Pipeline,
        sample: pd.DataFrame,
        windows: DateWindows,
        metrics: dict[str, float],
        params: dict[str, Any] | None = None,
    ) -> PublishedModel:
        """Register ``model`` as a new version under the configured name.

        Args:
            model: Fitted preprocessing + regressor pipeline.
            sample: One input row (target removed) recorded as input example.
            windows: Train/test bounds, stored as metadata strings.
            metrics: Test-window metrics logged with the run.
            params: Hyperparameters logged with the run.

        Returns:
            The new model version.
        """
        metadata = metadata_for(windows)
        with self._authenticated():
            mlflow.set_experiment(self._platform.experiment_name)

            with mlflow.start_run(run_name=f"{self._platform.model_name}_{windows.test_end}") as run:
                if params:
                    mlflow.log_params(params)
                mlflow.log_metrics(metrics)
                mlflow.set_tags(metadata)
                info = mlflow.sklearn.log_model(
                    sk_model=model,
                    name="model",
                    input_example=sample,
                    registered_model_name=self._platform.model_name,
                    metadata=metadata,
                )

            version = str(info.registered_model_version)
            client = MlflowClient()
            for key, value in metadata.items():
                client.set_model_version_tag(self._platform.model_name, version, key, value)

        published = PublishedModel(
            name=self._platform.model_name,
            version=version,
            run_id=run.info.run_id,
            metadata=metadata,
        )
        logger.info("Published %s (run %s)", published.model_uri, published.run_id)
        return published

    def deploy(self, published: PublishedModel) -> dict[str, Any]:
        """Create or update the fixed deployment so it serves ``published``.

        Databricks targets go through the serving-endpoint API; any other
        target uses the generic deployments API of its MLflow plugin.

        Returns:
            The deployment (or endpoint) description returned by the target.
        """
        with self._authenticated():
            client = get_deploy_client(self._platform.deploy_target)
            if _is_databricks(self._platform.deploy_target):
                return self._deploy_endpoint(client, published)
            return self._deploy_generic(client, published)

    def served_entity(self, published: PublishedModel) -> dict[str, Any]:
        return {
            "name": f"{published.name}-{published.version}",
            "entity_name": published.name,
            "entity_version": published.version,
            "workload_size": "Small",
            "scale_to_zero_enabled": True,
            **self._platform.predict_options,
        }

    def _deploy_endpoint(self, client: Any, published: PublishedModel) -> dict[str, Any]:
        app_name = self._platform.app_name
        served_entities = [self.served_entity(published)]

        existing = {e["name"] for e in client.list_endpoints()}
        if app_name in existing:
            logger.info("Updating endpoint %s -> %s", app_name, published.model_uri)
            return client.update_endpoint_config(
                endpoint=app_name, config={"served_entities": served_entities}
            )
        logger.info("Creating endpoint %s -> %s", app_name, published.model_uri)
        return client.create_endpoint(
            name=app_name,
            config={
                "served_entities": served_entities,
                "tags": [{"key": "title", "value": self._platform.title}],
            },
        )

    def _deploy_generic(self, client: Any, published: PublishedModel) -> dict[str, Any]:
        app_name = self._platform.app_name
        config = {"title": self._platform.title, **self._platform.predict_options}

        existing = {d["name"] for d in client.list_deployments()}
        if app_name in existing:
            logger.info("Updating deployment %s -> %s", app_name, published.model_uri)
            return client.update_deployment(
                app_name, model_uri=published.model_uri, config=config
            )
        logger.info("Creating deployment %s -> %s", app_name, published.model_uri)
        return client.create_deployment(
            app_name, model_uri=published.model_uri, config=config
        )
