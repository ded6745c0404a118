"""JSON type aliases shared by the content model, codec and logging."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Union

# Any in the recursive slots keeps pydantic from chasing the alias forever
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]
JsonMapping = Mapping[str, Any]
