"""Configuration, logging and error types shared across the pipeline."""
