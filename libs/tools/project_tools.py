from __future__ import annotations

import os
import re
from functools import partial
from pathlib import Path
from typing import Any, Dict

from libs.core import logging as core_logging
from libs.core.models import ToolResult, ToolSpec
from libs.tools.workspace import safe_workspace_path

LOGGER = core_logging.get_logger("project_tools")

_TITLE_PATTERN = re.compile(r"^# (.+)$", re.MULTILINE)


def _project_config_path() -> str:
    return os.getenv("PROJECT_CONFIG_PATH", "docs/project_config.md")


def _coding_standards_path() -> str:
    return os.getenv("CODING_STANDARDS_PATH", "docs/coding_standards.md")


def markdown_title(content: str, default: str) -> str:
    match = _TITLE_PATTERN.search(content)
    return match.group(1).strip() if match else default


def read_project_config(root: Path) -> str:
    return safe_workspace_path(root, _project_config_path()).read_text(encoding="utf-8")


def register_project_tools(registry, root: Path) -> None:
    from libs.core.tool_registry import Tool

    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_project_context",
                description=(
                    "Get current project configuration, tech stack, coding standards, and goals. "
                    "Call this when you need to understand the project context."
                ),
                input_schema={"type": "object", "properties": {}, "additionalProperties": False},
            ),
            handler=partial(_get_project_context, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_coding_standards",
                description="Return coding standards from the documented standards file.",
                input_schema={"type": "object", "properties": {}, "additionalProperties": False},
            ),
            handler=partial(_get_coding_standards, root),
        )
    )


def _get_project_context(root: Path, payload: Dict[str, Any]) -> ToolResult:
    relative_path = _project_config_path()
    try:
        content = read_project_config(root)
    except (OSError, ValueError) as exc:
        LOGGER.error("project_config_unavailable", path=relative_path, error=str(exc))
        return ToolResult.from_payload(
            {
                "error": (
                    f"No project configuration found at {relative_path}; stop the tool actions "
                    "so the wrong kind of code is not written."
                ),
            }
        )
    return ToolResult.from_payload(
        {
            "project_name": markdown_title(content, "Unknown Project"),
            "configuration": content,
            "guidance": (
                f"Project configuration loaded from {relative_path}. This markdown file is the "
                "single source of truth for project context, architecture, and guidelines."
            ),
        }
    )


def _get_coding_standards(root: Path, payload: Dict[str, Any]) -> ToolResult:
    relative_path = _coding_standards_path()
    try:
        content = safe_workspace_path(root, relative_path).read_text(encoding="utf-8")
    except (OSError, ValueError) as exc:
        LOGGER.error("coding_standards_unavailable", path=relative_path, error=str(exc))
        return ToolResult.from_payload(
            {
                "error": f"Coding standards file not found: {exc}",
                "file_path": relative_path,
                "message": (
                    "The coding standards markdown file could not be loaded. "
                    "Please ensure the file exists and is readable."
                ),
            }
        )
    LOGGER.info("coding_standards_loaded", path=relative_path)
    return ToolResult.from_payload(
        {"title": markdown_title(content, "Coding Standards"), "standards_content": content}
    )
