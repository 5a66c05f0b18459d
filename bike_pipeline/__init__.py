from bike_pipeline.config import Config, PlatformConfig
from bike_pipeline.publisher import ModelPublisher
from bike_pipeline.splitter import DateWindowSplitter, DateWindows
from bike_pipeline.tidy import TidyJob
from bike_pipeline.trainer import ModelTrainer

__all__ = [
    "Config",
    "PlatformConfig",
    "TidyJob",
    "DateWindowSplitter",
    "DateWindows",
    "ModelTrainer",
    "ModelPublisher",
]
