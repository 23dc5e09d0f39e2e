"""HTTP routes for the chat service."""
