"""Secret store provider for GCP Secret Manager."""
