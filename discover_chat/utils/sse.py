"""Stream event codec.

``encode_event`` turns a typed event into one ``data: {json}`` record;
``parse_event`` is its inverse; ``iter_sse_events`` decodes records
incrementally from a line stream (client side).
"""

import json
from collections.abc import AsyncIterable, AsyncIterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from discover_chat.models.events import EVENT_REGISTRY, ProtocolEvent
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data: "


class ProtocolDecodeError(Exception):
    """Raised when a record is not a valid protocol event."""


def encode_event(event: ProtocolEvent) -> str:
    """Serialize an event to the stream wire format.

    Returns ``data: {json}\\n\\n``.

    Raises:
        TypeError: If ``event`` is not a ProtocolEvent
        ValueError: If the event type is not registered
    """
    if not isinstance(event, ProtocolEvent):
        raise TypeError(f"encode_event() requires a ProtocolEvent, got {type(event).__name__}")
    if event.type not in EVENT_REGISTRY:
        raise ValueError(f"Unknown event type '{event.type}'")

    payload = json.dumps(event.to_wire(), separators=(",", ":"), ensure_ascii=False)
    return f"{DATA_PREFIX}{payload}\n\n"


def parse_event(data: Mapping[str, object]) -> ProtocolEvent:
    """Deserialize a wire-format mapping into its concrete event class.

    Raises:
        ProtocolDecodeError: For unknown or malformed events
    """
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ProtocolDecodeError("Event is missing the 'type' field")

    event_class = EVENT_REGISTRY.get(event_type)
    if event_class is None:
        raise ProtocolDecodeError(f"Unknown event type '{event_type}'")

    try:
        return event_class.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ProtocolDecodeError(f"Malformed '{event_type}' event: {e}") from e


def decode_record(record: str) -> ProtocolEvent:
    """Decode a single ``data: ...`` record."""
    if not record.startswith(DATA_PREFIX):
        raise ProtocolDecodeError("Record does not start with 'data: '")
    try:
        data = json.loads(record[len(DATA_PREFIX) :])
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"Record is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolDecodeError("Record payload is not an object")
    return parse_event(data)


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[ProtocolEvent]:
    """Yield events from a stream of text lines, in arrival order.

    Records are separated by blank lines. Malformed records are logged and
    skipped so one bad record does not end the stream.
    """
    buffer: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if line:
            buffer.append(line)
            continue
        if buffer:
            record, buffer = "\n".join(buffer), []
            try:
                yield decode_record(record)
            except ProtocolDecodeError as e:
                logger.warning(f"Skipping malformed stream record: {e}")

    if buffer:
        try:
            yield decode_record("\n".join(buffer))
        except ProtocolDecodeError as e:
            logger.warning(f"Skipping malformed trailing stream record: {e}")
