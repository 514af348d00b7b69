"""Shared helpers: geodesy, projection and logging."""
