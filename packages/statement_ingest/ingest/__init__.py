"""Source-specific ingestion pipelines (PDF statements and CSV exports)."""
