"""Core infrastructure: configuration, logging, storage and the pipeline."""
