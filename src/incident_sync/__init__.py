"""Outage incidents from health-check logs, synced to GitHub Issues."""

__version__ = "0.1.0"
