from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from sqlalchemy.orm import sessionmaker

from .models import ToolResult, ToolSpec


METHOD_NOT_FOUND = -32601

tool_input_type = Dict[str, Any]
tool_output_type = Union[ToolResult, Dict[str, Any]]
ToolHandler = Callable[[tool_input_type], Union[tool_output_type, Awaitable[tool_output_type]]]


class ToolNotFoundError(Exception):
    code = METHOD_NOT_FOUND

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


@dataclass(frozen=True)
class Tool:
    spec: ToolSpec
    handler: ToolHandler


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> None:
        if self._frozen:
            raise RuntimeError("ToolRegistry is frozen; register tools before dispatching")
        name = tool.spec.name.strip()
        if not name:
            raise ValueError("ToolSpec name must be non-empty")
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        try:
            Draft202012Validator.check_schema(tool.spec.input_schema)
        except SchemaError as exc:
            raise ValueError(f"Invalid input schema for {name}: {exc.message}") from exc
        if name != tool.spec.name:
            tool = Tool(spec=tool.spec.model_copy(update={"name": name}), handler=tool.handler)
        self._tools[name] = tool

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_specs(self) -> List[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def has(self, name: str) -> bool:
        return name in self._tools

    def lookup(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool


def default_registry(
    session_factory: sessionmaker | None = None,
    workspace_root: Path | None = None,
) -> ToolRegistry:
    """Build the full tool catalogue and return it frozen.

    Registration order is the advertisement order: user tools, task tools,
    codebase tools, then project tools.
    """
    from libs.core.database import SessionLocal
    from libs.tools.codebase_tools import register_codebase_tools
    from libs.tools.project_tools import register_project_tools
    from libs.tools.task_tools import register_task_tools
    from libs.tools.user_tools import register_user_tools
    from libs.tools.workspace import workspace_root as resolve_workspace_root

    factory = session_factory or SessionLocal
    root = workspace_root or resolve_workspace_root()

    registry = ToolRegistry()
    register_user_tools(registry, factory)
    register_task_tools(registry, factory)
    register_codebase_tools(registry, root)
    register_project_tools(registry, root)
    return registry.freeze()
