from discover_chat.client.stream_consumer import (
    ChatStreamClient,
    ChatStreamState,
    ToolCallView,
    ToolDisplay,
    render_tool_call,
)

__all__ = ["ChatStreamClient", "ChatStreamState", "ToolCallView", "ToolDisplay", "render_tool_call"]
