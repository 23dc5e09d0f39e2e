"""Data models shared across the service."""
