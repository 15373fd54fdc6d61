"""Aggregate cache and refresh scheduling."""
