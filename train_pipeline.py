"""Train, evaluate, publish and deploy the bike availability model.

Reads the tidy table built by ``tidy_pipeline.py``, fits a random forest on
a date window that ends right before the held-out test days, and registers
the result as a new model version behind the fixed prediction endpoint.
"""

from bike_pipeline.jobs import main_train

if __name__ == "__main__":
    main_train()
