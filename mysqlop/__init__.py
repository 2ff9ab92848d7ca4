"""MySQL cluster and backup resources, an in-memory store, cron scheduling and reconcilers."""

__version__ = "0.1.0"