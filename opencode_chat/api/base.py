"""Base model shared by every OpenCode wire type."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator


class WireModel(BaseModel):
    """Shared config: ignore unknown fields, accept wire or Python field names.

    A field whose value fails validation falls back to the field default, so a
    semantically unexpected payload degrades instead of raising.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_bad_value(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            return field.get_default(call_default_factory=True)

    @classmethod
    def decode(cls, data: Any):
        """Build from untyped JSON; anything but an object yields all defaults."""
        if not isinstance(data, dict):
            data = {}
        return cls.model_validate(data)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def decode_list(model: type, data: Any) -> list:
    """Decode a JSON array of objects, skipping entries that are not objects."""
    if not isinstance(data, list):
        return []
    return [model.decode(item) for item in data if isinstance(item, dict)]
