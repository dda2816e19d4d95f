from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


def to_camel(value: str) -> str:
    """Convert snake_case field names to lowerCamelCase for API payloads."""
    if "_" not in value:
        return value
    head, *tail = value.split("_")
    return head + "".join(word.capitalize() for word in tail if word)


def stringify(v: Any) -> Any:
    return v if v is None else str(v)


PyObjectId = Annotated[str, BeforeValidator(stringify)]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class FrozenCamelModel(CamelModel):
    """Immutable record: readings and alerts never change after creation."""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, frozen=True
    )
