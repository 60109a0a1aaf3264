"""Data models for the retrieval core."""
