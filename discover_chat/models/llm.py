"""LLM-related data models and the model event sequence (provider-agnostic)."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from discover_chat.utils.cancellation import CancellationToken


# Content block types sent to the model
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    # Anthropic responses carry fields not modelled here
    model_config = ConfigDict(extra="ignore")


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    model_config = ConfigDict(extra="ignore")


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    model_config = ConfigDict(extra="ignore")


LLMContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[LLMContentBlock]


@dataclass
class LLMTool:
    """Tool definition advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another step's usage into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens


@dataclass
class ModelRequest:
    """Everything needed to start one multi-step generation."""

    system_prompt: str
    messages: list[LLMMessage]
    tools: list[LLMTool]
    max_output_tokens: int
    step_limit: int
    cancellation_token: "CancellationToken | None" = None


# Model event sequence


@dataclass
class TextDelta:
    """A fragment of generated text."""

    text: str
    type: Literal["text-delta"] = "text-delta"


@dataclass
class ToolCallRequest:
    """The model asked for a tool to be executed."""

    id: str
    name: str
    input: dict[str, Any]
    type: Literal["tool-call"] = "tool-call"


@dataclass
class StepFinish:
    """One generation step ended."""

    step: int
    finish_reason: str | None
    usage: LLMUsage = field(default_factory=LLMUsage)
    type: Literal["step-finish"] = "step-finish"


@dataclass
class Finish:
    """The whole generation ended normally."""

    finish_reason: str | None
    usage: LLMUsage = field(default_factory=LLMUsage)
    type: Literal["finish"] = "finish"


@dataclass
class ModelFailure:
    """The generation failed; no further events follow."""

    error: BaseException
    type: Literal["error"] = "error"


ModelEvent = TextDelta | ToolCallRequest | StepFinish | Finish | ModelFailure
