"""Service boundary for the execution and proposal pipelines."""
