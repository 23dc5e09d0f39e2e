"""Turn frozen streaming state into persisted content blocks."""

from discover_chat.models.conversation import ContentBlock
from discover_chat.models.streaming import FrozenGeneration, InvocationStatus, TextPart, ToolPart
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


def reconcile(frozen: FrozenGeneration) -> list[ContentBlock]:
    """Build the assistant message content from a frozen generation.

    Text parts become ``text`` blocks, empty ones included so positions
    survive, unless the generation is a single empty text part. Tool parts
    become a ``tool_use`` block, followed by a ``tool_result`` block once the
    invocation resolved. Pure and idempotent.

    Args:
        frozen: Snapshot taken from the generation accumulator

    Returns:
        Content blocks in the order the parts were observed
    """
    if len(frozen.parts) == 1 and isinstance(frozen.parts[0], TextPart) and not frozen.parts[0].content:
        return []

    blocks: list[ContentBlock] = []
    for part in frozen.parts:
        if isinstance(part, TextPart):
            blocks.append(ContentBlock.text_block(part.content))
            continue

        if not isinstance(part, ToolPart):
            raise TypeError(f"Unknown content part {part!r}")

        invocation = frozen.invocations.get(part.tool_id)
        if invocation is None:
            logger.warning(f"Tool part {part.tool_id} has no invocation, skipping")
            continue

        blocks.append(ContentBlock.tool_use(invocation.id, invocation.name, dict(invocation.input)))
        if invocation.status is InvocationStatus.COMPLETED:
            blocks.append(ContentBlock.tool_result_block(invocation.id, invocation.output))
        elif invocation.status is InvocationStatus.FAILED:
            blocks.append(
                ContentBlock.tool_result_block(
                    invocation.id, {"error": invocation.error, "retryable": invocation.retryable}
                )
            )

    return blocks
