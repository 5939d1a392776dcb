"""HTTP API over TimelineService (FastAPI)."""
