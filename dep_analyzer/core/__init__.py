"""Ambient infrastructure: configuration and logging."""
