"""Affiliate conversion tracking: settings, telemetry, models and reporting jobs."""

__version__ = "0.1.0"