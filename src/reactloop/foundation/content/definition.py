"""Tool definitions and input validation."""

from __future__ import annotations

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from reactloop.foundation.errors import JsonDict, ToolInputError


class ToolDefinition(BaseModel):
    """Name, description and input contract of a tool. Immutable once built.

    ``input_schema`` is a pydantic model class; its JSON Schema is what the backend
    sees, and raw invocation input is validated against it.

    Example:
        >>> class OrderQuery(BaseModel):
        ...     order_id: str
        >>> ToolDefinition(name="check_order_status", description="Look up an order", input_schema=OrderQuery)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$")
    description: str = Field(..., min_length=1)
    input_schema: type[BaseModel]

    def json_schema(self) -> JsonDict:
        """JSON Schema of the input, as sent to the backend."""
        return self.input_schema.model_json_schema()


def format_validation_error(exc: PydanticValidationError, *, tool_name: str) -> str:
    """Condense pydantic's error list into one line per problem."""
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "input"
        problems.append(f"{loc}: {err['msg']}")
    return f"Invalid input for '{tool_name}': " + "; ".join(problems)


def validate_tool_input(definition: ToolDefinition, raw: object) -> BaseModel:
    """Validate raw invocation input against the definition's schema.

    Validation runs in strict JSON mode: a missing required field, a wrong primitive
    type ("42" for an int) or a value outside a Literal/Enum choice all fail. No side
    effects.

    Raises:
        ToolInputError: On any mismatch, including non-object or non-JSON input
    """
    if not isinstance(raw, dict):
        raise ToolInputError(f"Invalid input for '{definition.name}': expected an object, got {type(raw).__name__}")
    try:
        payload = orjson.dumps(raw)
    except TypeError as e:
        raise ToolInputError(f"Invalid input for '{definition.name}': {e}") from e
    try:
        return definition.input_schema.model_validate_json(payload, strict=True)
    except PydanticValidationError as e:
        raise ToolInputError(format_validation_error(e, tool_name=definition.name)) from e
