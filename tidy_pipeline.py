"""Rebuild the hourly bike availability table from raw station readings."""

from bike_pipeline.jobs import main_tidy

if __name__ == "__main__":
    main_tidy()
