"""Music discovery chat service with a streaming tool-calling agent."""

__version__ = "0.1.0"
