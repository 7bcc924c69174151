"""Push notification dispatch pipeline."""
