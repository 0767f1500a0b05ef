"""Similarity scoring, ranking and context expansion for chunk retrieval."""
