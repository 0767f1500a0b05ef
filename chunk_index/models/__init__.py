"""Pydantic domain models shared across the chunk index."""
