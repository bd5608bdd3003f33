"""Health probe resource."""
