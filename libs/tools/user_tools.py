from __future__ import annotations

from functools import partial
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy.orm import sessionmaker

from libs.core import crud_store, logging as core_logging
from libs.core.models import ToolResult, ToolSpec, User
from libs.core.validation import UserCreate, UserUpdate, decode_arguments
from libs.tools.task_tools import task_payload

LOGGER = core_logging.get_logger("user_tools")

_ID_PROPERTY = {"type": "number", "minimum": 1}


class UserIdArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., gt=0)


class UpdateUserArgs(UserUpdate):
    id: int = Field(..., gt=0)


class GetUserArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = Field(default=None, gt=0)
    email: Optional[str] = None


class ListUsersArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    search: Optional[str] = None
    with_task_counts: bool = Field(
        default=False, validation_alias=AliasChoices("withTaskCounts", "with_task_counts")
    )


def user_payload(user: User, include_tasks: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }
    if user.task_count is not None:
        payload["taskCount"] = user.task_count
    if include_tasks:
        payload["tasks"] = [task_payload(task) for task in user.tasks]
    return payload


def register_user_tools(registry, session_factory: sessionmaker) -> None:
    from libs.core.tool_registry import Tool

    registry.register(
        Tool(
            spec=ToolSpec(
                name="create_user",
                description="Create a new user in the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "email": {
                            "type": "string",
                            "format": "email",
                            "description": "User email address",
                        },
                        "name": {
                            "type": "string",
                            "minLength": 1,
                            "maxLength": 100,
                            "description": "User full name (optional)",
                        },
                    },
                    "required": ["email"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_create_user, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="update_user",
                description="Update an existing user in the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {**_ID_PROPERTY, "description": "ID of the user to update"},
                        "email": {
                            "type": "string",
                            "format": "email",
                            "description": "User email address (optional)",
                        },
                        "name": {
                            "type": "string",
                            "minLength": 1,
                            "maxLength": 100,
                            "description": "User full name (optional)",
                        },
                    },
                    "required": ["id"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_update_user, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="delete_user",
                description="Delete a user from the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {**_ID_PROPERTY, "description": "ID of the user to delete"},
                    },
                    "required": ["id"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_delete_user, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_user",
                description="Get a user by ID or email from the database",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {**_ID_PROPERTY, "description": "ID of the user to retrieve"},
                        "email": {
                            "type": "string",
                            "format": "email",
                            "description": "Email of the user to retrieve",
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            handler=partial(_get_user, session_factory),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="list_users",
                description="List all users or search users by name/email",
                input_schema={
                    "type": "object",
                    "properties": {
                        "search": {
                            "type": "string",
                            "description": "Search term to filter users by name or email (optional)",
                        },
                        "withTaskCounts": {
                            "type": "boolean",
                            "description": "Include task counts for each user (optional, default: false)",
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            handler=partial(_list_users, session_factory),
        )
    )


def _create_user(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(UserCreate, payload)
    LOGGER.info("creating_user", email=args.email)
    with session_factory() as db:
        user = crud_store.create_user(db, args)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"User created successfully with ID: {user.id}",
            "user": user_payload(user),
        }
    )


def _update_user(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(UpdateUserArgs, payload)
    changes = UserUpdate.model_validate(args.model_dump(exclude={"id"}, exclude_unset=True))
    LOGGER.info("updating_user", user_id=args.id)
    with session_factory() as db:
        user = crud_store.update_user(db, args.id, changes)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"User with ID {user.id} updated successfully",
            "user": user_payload(user),
        }
    )


def _delete_user(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(UserIdArgs, payload)
    LOGGER.info("deleting_user", user_id=args.id)
    with session_factory() as db:
        user = crud_store.delete_user(db, args.id)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"User with ID {user.id} deleted successfully",
            "deletedUser": user_payload(user),
        }
    )


def _get_user(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(GetUserArgs, payload)
    if args.id is None and not args.email:
        raise ValueError("Either id or email must be provided")
    if args.id is not None and args.email:
        raise ValueError("Provide either id or email, not both")
    with session_factory() as db:
        if args.id is not None:
            user = crud_store.get_user(db, args.id)
        else:
            user = crud_store.get_user_by_email(db, args.email)
    if user is None:
        identifier = f"ID {args.id}" if args.id is not None else f"email {args.email}"
        LOGGER.info("user_not_found", user_id=args.id, email=args.email)
        return ToolResult.from_payload(
            {"success": False, "message": f"User with {identifier} not found", "user": None}
        )
    return ToolResult.from_payload(
        {
            "success": True,
            "message": f"User with ID {user.id} retrieved successfully",
            "user": user_payload(user, include_tasks=True),
        }
    )


def _list_users(session_factory: sessionmaker, payload: Dict[str, Any]) -> ToolResult:
    args = decode_arguments(ListUsersArgs, payload)
    with session_factory() as db:
        users = crud_store.list_users(db, search=args.search, with_task_counts=args.with_task_counts)
    if args.search:
        message = f'Found {len(users)} users matching "{args.search}"'
    elif args.with_task_counts:
        message = f"Retrieved {len(users)} users with task counts"
    else:
        message = f"Retrieved {len(users)} users"
    include_tasks = not (args.search or args.with_task_counts)
    return ToolResult.from_payload(
        {
            "success": True,
            "message": message,
            "count": len(users),
            "users": [user_payload(user, include_tasks=include_tasks) for user in users],
        }
    )
