"""Hierarchy construction: boundary detection, chunking, scoring and relationship upkeep."""
