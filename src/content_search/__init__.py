"""Retrieval core for a content-discovery service."""
