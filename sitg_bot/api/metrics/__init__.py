"""Prometheus exposition resource."""
