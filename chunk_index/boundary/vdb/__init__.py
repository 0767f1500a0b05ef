"""Vector index over persisted chunk embeddings."""
