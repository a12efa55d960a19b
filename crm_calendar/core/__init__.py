"""Core infrastructure: configuration, timezone helpers and collaborator protocols."""
