"""Resilience and logging infrastructure."""
