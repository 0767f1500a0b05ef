"""Core business logic: hierarchy construction, scoring, embeddings and retrieval."""
