"""Decorator turning plain functions into registrable tools.

The input schema is generated from the function's type hints and defaults, with
field descriptions taken from a Google/NumPy style ``Args:`` docstring section.

Example:
    >>> @tool(description="Look up the shipping status of an order")
    ... async def check_order_status(order_id: str) -> dict:
    ...     '''Args:
    ...         order_id: Order number as printed on the receipt
    ...     '''
    ...     return {"status": await orders.status(order_id)}
    ...
    >>> registry.register_tool(check_order_status)
    >>> await check_order_status(order_id="42")  # still callable directly
    {'status': 'shipped'}
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Callable, get_type_hints, overload

from pydantic import BaseModel, ConfigDict, Field, create_model

from reactloop.foundation.content import ToolDefinition

_PARAM_PATTERN = re.compile(
    r"^\s*(?P<name>\w+)\s*(?:\([^)]*\))?\s*:\s*(?P<desc>.+?)(?=\n\s*\w+\s*(?:\([^)]*\))?\s*:|\Z)",
    re.MULTILINE | re.DOTALL,
)


def _parse_docstring_params(docstring: str | None) -> dict[str, str]:
    """Extract parameter descriptions from the Args/Parameters section."""
    if not docstring:
        return {}
    sections = re.split(r"(?:^|\n)\s*(?:Args|Arguments|Parameters)\s*:\s*\n", docstring, flags=re.IGNORECASE)
    if len(sections) < 2:
        return {}
    args_section = re.split(r"\n\s*(?:Returns|Raises|Examples?|Notes?|Yields)\s*:", sections[1], flags=re.IGNORECASE)[0]
    return {m.group("name"): " ".join(m.group("desc").split()) for m in _PARAM_PATTERN.finditer(args_section)}


def _summary(docstring: str | None) -> str:
    """First paragraph of a docstring, whitespace-normalized."""
    if not docstring:
        return ""
    head = re.split(r"\n\s*\n|(?:^|\n)\s*(?:Args|Arguments|Parameters)\s*:", docstring.strip(), maxsplit=1)[0]
    return " ".join(head.split())


def _generate_schema(func: Callable[..., Any], model_name: str) -> type[BaseModel]:
    """Build a pydantic model from a function signature."""
    sig = inspect.signature(func)
    hints = get_type_hints(func)
    param_docs = _parse_docstring_params(func.__doc__)

    fields: dict[str, Any] = {}
    for name, param in sig.parameters.items():
        if name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        field_type = hints.get(name, str)
        description = param_docs.get(name, f"Parameter: {name}")
        if param.default is inspect.Parameter.empty:
            fields[name] = (field_type, Field(..., description=description))
        else:
            fields[name] = (field_type, Field(default=param.default, description=description))

    return create_model(model_name, __config__=ConfigDict(extra="forbid"), **fields)


def _kwargs(params: BaseModel) -> dict[str, Any]:
    return {name: getattr(params, name) for name in type(params).model_fields}


def _model_name(tool_name: str) -> str:
    return "".join(part.title() for part in tool_name.split("_")) + "Input"


@dataclass(frozen=True, slots=True)
class FunctionTool:
    """A function paired with its generated ToolDefinition."""

    definition: ToolDefinition
    func: Callable[..., Any]
    timeout: float | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def handler(self) -> Callable[[BaseModel], Any]:
        """Registry entry point: unpacks the validated model into keyword arguments.

        Async functions get an async handler so the registry awaits them on the loop
        instead of handing them to a worker thread.
        """
        func = self.func
        if inspect.iscoroutinefunction(func):
            async def run_async(params: BaseModel) -> Any:
                return await func(**_kwargs(params))
            return run_async
        return lambda params: func(**_kwargs(params))

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)


@overload
def tool(func: Callable[..., Any], /) -> FunctionTool: ...


@overload
def tool(
    *,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
) -> Callable[[Callable[..., Any]], FunctionTool]: ...


def tool(
    func: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
) -> FunctionTool | Callable[[Callable[..., Any]], FunctionTool]:
    """Decorate a sync or async function as a tool.

    Args:
        func: Function (when used without parentheses)
        name: Tool name (default: function name)
        description: What the tool does, shown to the backend (default: docstring summary)
        timeout: Per-tool execution bound in seconds

    Raises:
        ValueError: If no description is given and the function has no docstring
    """
    def decorator(fn: Callable[..., Any]) -> FunctionTool:
        tool_name = name or fn.__name__
        desc = description or _summary(fn.__doc__)
        if not desc:
            raise ValueError(f"Tool '{tool_name}' needs a description or a docstring")
        definition = ToolDefinition(
            name=tool_name,
            description=desc,
            input_schema=_generate_schema(fn, _model_name(tool_name)),
        )
        return FunctionTool(definition=definition, func=fn, timeout=timeout)

    if func is not None:
        return decorator(func)
    return decorator
