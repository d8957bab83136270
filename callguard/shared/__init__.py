"""Shared types and the error taxonomy."""
