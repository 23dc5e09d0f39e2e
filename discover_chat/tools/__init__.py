"""Tools for the music discovery assistant."""

from discover_chat.tools.registry import ToolCallResult, ToolsRegistry

__all__ = ["ToolCallResult", "ToolsRegistry"]
