"""Conversation persistence interface and in-memory implementation."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from cuid2 import cuid_wrapper

from discover_chat.models.conversation import ContentBlock, Conversation, Message
from discover_chat.utils.errors import NotFoundError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


@dataclass
class NewConversation:
    """Result of creating a conversation together with its first message."""

    conversation: Conversation
    messages: list[Message]


class ConversationStore(Protocol):
    """Interface for conversation storage.

    The orchestrator only ever appends; it is the single writer of a
    conversation for the duration of one stream.
    """

    async def conversation_exists(self, conversation_id: str) -> bool:
        ...

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation in creation order."""
        ...

    async def add_user_message(self, conversation_id: str, text: str) -> Message:
        ...

    async def add_assistant_message(
        self, conversation_id: str, blocks: list[ContentBlock], message_id: str | None = None
    ) -> Message:
        """Append the assistant message, optionally under a pre-assigned id."""
        ...

    async def create_conversation_with_message(self, text: str) -> NewConversation:
        """Create a conversation whose first message is the given user text."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        ...


class InMemoryConversationStore:
    """In-memory conversation store.

    Conversations are kept until the process exits.
    """

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}

    async def conversation_exists(self, conversation_id: str) -> bool:
        return conversation_id in self.conversations

    async def get_messages(self, conversation_id: str) -> list[Message]:
        return list(self._require(conversation_id).messages)

    async def add_user_message(self, conversation_id: str, text: str) -> Message:
        return self._append(conversation_id, "user", [ContentBlock.text_block(text)])

    async def add_assistant_message(
        self, conversation_id: str, blocks: list[ContentBlock], message_id: str | None = None
    ) -> Message:
        return self._append(conversation_id, "assistant", blocks, message_id)

    async def create_conversation_with_message(self, text: str) -> NewConversation:
        now = datetime.now(UTC)
        conversation = Conversation(id=self._generate_id(), created_at=now, updated_at=now)
        self.conversations[conversation.id] = conversation
        logger.info(f"Created conversation {conversation.id}")

        message = self._append(conversation.id, "user", [ContentBlock.text_block(text)])
        return NewConversation(conversation=conversation, messages=[message])

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.conversations.get(conversation_id)

    def _append(
        self, conversation_id: str, role: str, blocks: list[ContentBlock], message_id: str | None = None
    ) -> Message:
        conversation = self._require(conversation_id)
        now = datetime.now(UTC)
        message = Message(
            id=message_id or self._generate_id(),
            conversation_id=conversation_id,
            role=role,
            content=[block.model_copy(deep=True) for block in blocks],
            created_at=now,
        )
        conversation.messages.append(message)
        conversation.updated_at = now
        logger.debug(f"Stored {role} message {message.id} in conversation {conversation_id}")
        return message

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def _generate_id(self) -> str:
        """Generate a new CUID-based identifier."""
        return cuid()
