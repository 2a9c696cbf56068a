"""GCP Secret Manager synchronization layer."""

__version__ = "0.1.0"
