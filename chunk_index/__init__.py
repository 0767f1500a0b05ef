"""Hierarchical multi-resolution chunk index."""
