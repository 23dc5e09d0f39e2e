"""Domain services and collaborators."""
