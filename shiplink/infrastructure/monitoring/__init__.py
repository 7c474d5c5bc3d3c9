"""Monitoring: logging setup and the health/performance monitor."""
