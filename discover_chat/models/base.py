"""Shared Pydantic base with camelCase wire-format serialization."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes to camelCase on the wire.

    Python code uses snake_case attributes; ``model_dump(by_alias=True)``
    produces the camelCase keys clients consume. Both spellings are accepted
    on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump to the camelCase JSON-compatible form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
