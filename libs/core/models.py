from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ToolSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    def advertised(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Envelope returned for every dispatched tool call.

    Successful handlers build their own envelope, usually one text item holding
    a JSON document. Failures carry the error message as text and set
    ``is_error``.
    """

    model_config = ConfigDict(populate_by_name=True)

    content: List[TextContent]
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def from_text(cls, text: str) -> "ToolResult":
        return cls(content=[TextContent(text=text)])

    @classmethod
    def from_payload(cls, payload: Any) -> "ToolResult":
        return cls.from_text(json.dumps(payload, indent=2, default=_json_default))

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(content=[TextContent(text=message)], is_error=True)

    def first_text(self) -> str:
        return self.content[0].text if self.content else ""


class ToolInvocation(BaseModel):
    name: str
    arguments: Optional[Dict[str, Any]] = None


class Task(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    priority: Priority
    completed: bool
    user_id: int
    created_at: datetime
    updated_at: datetime


class User(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    tasks: List[Task] = Field(default_factory=list)
    task_count: Optional[int] = None


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)
