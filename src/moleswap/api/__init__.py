"""Relayer HTTP API."""
