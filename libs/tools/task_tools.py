from __future__ import annotations

from functools import partial
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy.orm import sessionmaker

from libs.core import crud_store, logging as core_logging
from libs.core.models import Priority, Task, ToolResult, ToolSpec
from libs.core.validation import TaskCreate, TaskUpdate, decode_arguments

LOGGER = core_logging.get_logger("task_tools")

_PRIORITIES = [priority.value for priority in Priority]


class TaskIdArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., gt=0)


class UpdateTaskArgs(TaskUpdate):
    id: int = Field(..., gt=0)


class ListTasksArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Optional[int] = Field(
        default=None, gt=0, validation_alias=AliasChoices("userId", "user_id")
    )


def task_payload(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "completed": task.completed,
        "userId": task.user_id,
        "createdAt": task.created_at,
        "updatedAt": task.updated_at,
    }


def register_task_tools(registry, session_factory: sessionmaker) -> None:
    from libs.core.tool_registry import Tool

    registry.register(
        Tool(
            spec=ToolSpec(
                name="create_task",
                description="Create a new task in the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "title": {
                            "type": "string",
                            "minLength": 1,
                            "maxLength": 255,
                            "description": "Task title",
                        },
                        "description": {
                            "type": "string",
                            "maxLength": 1000,
                            "description": "Task description (optional)",
                        },
                        "priority": {
                            "type": "string",
                            "enum": _PRIORITIES,
                            "description": "Task priority (default: MEDIUM)",
                        },
                        "userId": {
                            "type": "number",
                            "minimum": 1,
                            "description": "ID of the user to assign the task to",
                        },
                    },
                    "required": ["title", "userId"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_create_task, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="update_task",
                description="Update an existing task in the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "number",
                            "minimum": 1,
                            "description": "ID of the task to update",
                        },
                        "title": {
                            "type": "string",
                            "minLength": 1,
                            "maxLength": 255,
                            "description": "Task title (optional)",
                        },
                        "description": {
                            "type": "string",
                            "maxLength": 1000,
                            "description": "Task description (optional)",
                        },
                        "priority": {
                            "type": "string",
                            "enum": _PRIORITIES,
                            "description": "Task priority (optional)",
                        },
                        "completed": {
                            "type": "boolean",
                            "description": "Task completion status (optional)",
                        },
                    },
                    "required": ["id"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_update_task, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="delete_task",
                description="Delete a task from the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "number",
                            "minimum": 1,
                            "description": "ID of the task to delete",
                        },
                    },
                    "required": ["id"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_delete_task, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_task",
                description="Get a task by ID from the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "number",
                            "minimum": 1,
                            "description": "ID of the task to retrieve",
                        },
                    },
                    "required": ["id"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_get_task, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="list_tasks",
                description="List all tasks or tasks for a specific user",
                input_schema={
                    "type": "object",
                    "properties": {
                        "userId": {
                            "type": "number",
                            "minimum": 1,
                            "description": (
                                "ID of the user to get tasks for "
                                "(optional, if not provided returns all tasks)"
                            ),
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            handler=partial(_list_tasks, session_factory),
        )
    )


def _create_task(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(TaskCreate, payload)
    LOGGER.info("creating_task", title=args.title, user_id=args.user_id)
    with session_factory() as db:
        task = crud_store.create_task(db, args)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f'Task created successfully with ID: "{task.id}"',
            "task": task_payload(task),
        }
    )


def _update_task(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(UpdateTaskArgs, payload)
    changes = TaskUpdate.model_validate(args.model_dump(exclude={"id"}, exclude_unset=True))
    LOGGER.info("updating_task", task_id=args.id)
    with session_factory() as db:
        task = crud_store.update_task(db, args.id, changes)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"Task with ID {task.id} updated successfully",
            "updatedTask": task_payload(task),
        }
    )


def _delete_task(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(TaskIdArgs, payload)
    LOGGER.info("deleting_task", task_id=args.id)
    with session_factory() as db:
        task = crud_store.delete_task(db, args.id)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"Task with ID {task.id} deleted successfully",
            "deletedTask": task_payload(task),
        }
    )


def _get_task(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(TaskIdArgs, payload)
    with session_factory() as db:
        task = crud_store.get_task(db, args.id)
    if task is None:
        return ToolResult.from_payload(
            {"success": False, "message": f"Task with ID {args.id} not found", "task": None}
        )
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"Task with ID {task.id} retrieved successfully",
            "task": task_payload(task),
        }
    )


def _list_tasks(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(ListTasksArgs, payload)
    with session_factory() as db:
        tasks = crud_store.list_tasks(db, user_id=args.user_id)
    if args.user_id is not None:
        message = f"Retrieved {len(tasks)} tasks for user {args.user_id}"
    else:
        message = f"Retrieved {len(tasks)} tasks"
    return ToolResult.from_payload(
        {
            "success": True,
            "message": message,
            "count": len(tasks),
            "tasks": [task_payload(task) for task in tasks],
        }
    )
