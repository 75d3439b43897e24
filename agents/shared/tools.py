"""
Project Conductor - Tool Registry

Tools an agent can call from the ReAct loop. A tool is a name, a
description, a JSON input schema and a sync or async handler; the registry
validates parameters, invokes the handler and normalizes its output into a
ToolResult.
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .errors import InvalidToolParametersError, ToolExecutionError, ToolNotFoundError
from .schemas import ToolResult, ToolSchema

logger = logging.getLogger(__name__)

ToolOutput = Union[str, Dict[str, Any], ToolResult]
ToolHandler = Callable[..., Union[ToolOutput, Awaitable[ToolOutput]]]

# JSON schema primitive types and the Python types accepted for them
_JSON_TYPES = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list, tuple),
}


@dataclass
class Tool:
    """A callable capability exposed to the model"""
    name: str
    description: str
    handler: ToolHandler
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema
        )

    def validate(self, parameters: Dict[str, Any]) -> None:
        """
        Check required parameters and primitive types against the input schema.

        Raises:
            InvalidToolParametersError: On the first violation found
        """
        if not isinstance(parameters, dict):
            raise InvalidToolParametersError(self.name, "parameters must be an object")

        properties = self.input_schema.get("properties", {})
        for required in self.input_schema.get("required", []):
            if required not in parameters:
                raise InvalidToolParametersError(self.name, f"missing required parameter '{required}'")

        for key, value in parameters.items():
            expected = properties.get(key, {}).get("type")
            if expected not in _JSON_TYPES:
                continue
            # bool is an int subclass; keep booleans out of numeric fields
            if isinstance(value, bool) and expected in ("number", "integer"):
                raise InvalidToolParametersError(self.name, f"parameter '{key}' must be {expected}")
            if not isinstance(value, _JSON_TYPES[expected]):
                raise InvalidToolParametersError(self.name, f"parameter '{key}' must be {expected}")


def normalize_tool_output(output: ToolOutput) -> ToolResult:
    """Coerce a handler return value into a ToolResult"""
    if isinstance(output, ToolResult):
        return output
    if isinstance(output, str):
        return ToolResult.from_text(output)
    if isinstance(output, dict):
        return ToolResult.from_text(
            json.dumps(output, ensure_ascii=False, default=str),
            structured_content=output
        )
    return ToolResult.from_text(str(output))


class ToolRegistry:
    """
    Name-indexed collection of tools.

    Registration order is preserved so tool catalogs render deterministically.
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None, timeout: Optional[float] = None):
        self._tools: Dict[str, Tool] = {}
        self.timeout = timeout
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' already registered, replacing it")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def catalog(self) -> List[ToolSchema]:
        """Tool schemas in registration order"""
        return [tool.schema() for tool in self._tools.values()]

    def describe(self) -> str:
        """Human-readable catalog for prompts"""
        if not self._tools:
            return "No tools available."
        lines = []
        for tool in self._tools.values():
            lines.append(f"- {tool.name}: {tool.description}")
            lines.append(f"  input_schema: {json.dumps(tool.input_schema, ensure_ascii=False)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def invoke(
        self,
        name: str,
        parameters: Dict[str, Any],
        timeout: Optional[float] = None
    ) -> ToolResult:
        """
        Invoke a tool by name.

        Args:
            name: Tool name
            parameters: Tool parameters
            timeout: Deadline in seconds (defaults to the registry timeout)

        Returns:
            Normalized ToolResult

        Raises:
            ToolNotFoundError: Unknown tool
            InvalidToolParametersError: Parameters do not match the schema
            ToolExecutionError: The handler raised or timed out
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        tool.validate(parameters)

        deadline = timeout if timeout is not None else self.timeout
        logger.debug(f"Invoking tool '{name}' with {parameters}")

        try:
            if inspect.iscoroutinefunction(tool.handler):
                output = await asyncio.wait_for(tool.handler(**parameters), timeout=deadline)
            else:
                output = tool.handler(**parameters)
                if inspect.isawaitable(output):
                    output = await asyncio.wait_for(output, timeout=deadline)
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(name, f"timed out after {deadline}s") from e
        except TypeError as e:
            raise InvalidToolParametersError(name, str(e)) from e
        except Exception as e:
            logger.error(f"Tool '{name}' raised: {e}")
            raise ToolExecutionError(name, str(e)) from e

        return normalize_tool_output(output)
