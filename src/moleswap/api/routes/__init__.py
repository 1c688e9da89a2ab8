"""Relayer API routers."""
