"""Multi-scale embedding generation."""
