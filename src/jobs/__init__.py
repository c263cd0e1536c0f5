"""Background processing for queued deck jobs."""
