"""Logging configuration and structured log helpers."""
