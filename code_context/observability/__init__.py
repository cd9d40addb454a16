"""Metrics and health checks for the ranking pipeline."""
