"""Configuration, runtime state, errors and shared utilities."""
