from __future__ import annotations

import asyncio
import json
from typing import Any, Dict

import pytest

from libs.core.database import create_db_engine, create_session_factory, init_db
from libs.core.models import ToolInvocation, ToolResult
from libs.core.tool_registry import ToolRegistry
from libs.framework.tool_runtime import ToolGateway
from libs.tools.task_tools import register_task_tools
from libs.tools.user_tools import register_user_tools


@pytest.fixture
def gateway() -> ToolGateway:
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    factory = create_session_factory(engine)
    registry = ToolRegistry()
    register_user_tools(registry, factory)
    register_task_tools(registry, factory)
    return ToolGateway(registry.freeze(), timeout_s=5.0)


def _call(gateway: ToolGateway, name: str, arguments: Dict[str, Any] | None = None) -> ToolResult:
    return asyncio.run(gateway.dispatch(ToolInvocation(name=name, arguments=arguments)))


def _payload(result: ToolResult) -> Dict[str, Any]:
    assert result.is_error is False, result.first_text()
    return json.loads(result.first_text())


def _create_user(gateway: ToolGateway, email: str, name: str | None = None) -> Dict[str, Any]:
    arguments: Dict[str, Any] = {"email": email}
    if name:
        arguments["name"] = name
    return _payload(_call(gateway, "create_user", arguments))["user"]


def test_create_user_returns_camel_case_envelope(gateway):
    body = _payload(_call(gateway, "create_user", {"email": "Ada@Example.com", "name": "Ada"}))
    assert body["success"] is True
    assert body["message"] == f"User created successfully with ID: {body['user']['id']}"
    assert body["user"]["email"] == "ada@example.com"
    assert set(body["user"]) == {"id", "email", "name", "createdAt", "updatedAt"}


def test_create_user_duplicate_email_is_error(gateway):
    _create_user(gateway, "a@example.com")
    result = _call(gateway, "create_user", {"email": "a@example.com"})
    assert result.is_error is True
    assert result.first_text() == "User with email a@example.com already exists"


def test_create_user_invalid_arguments_is_error(gateway):
    result = _call(gateway, "create_user", {"email": "nope"})
    assert result.is_error is True
    assert result.first_text().startswith("Invalid arguments: email:")

    result = _call(gateway, "create_user", {"email": "a@example.com", "role": "admin"})
    assert result.is_error is True


def test_get_user_by_id_and_email(gateway):
    user = _create_user(gateway, "a@example.com", "A")
    _payload(_call(gateway, "create_task", {"title": "t", "userId": user["id"]}))

    by_id = _payload(_call(gateway, "get_user", {"id": user["id"]}))
    assert by_id["user"]["tasks"][0]["title"] == "t"
    by_email = _payload(_call(gateway, "get_user", {"email": "A@example.com"}))
    assert by_email["user"]["id"] == user["id"]

    missing = _payload(_call(gateway, "get_user", {"id": 999}))
    assert missing == {"success": False, "message": "User with ID 999 not found", "user": None}


def test_get_user_requires_exactly_one_identifier(gateway):
    result = _call(gateway, "get_user", {})
    assert result.is_error is True
    assert result.first_text() == "Either id or email must be provided"

    result = _call(gateway, "get_user", {"id": 1, "email": "a@example.com"})
    assert result.is_error is True
    assert result.first_text() == "Provide either id or email, not both"


def test_update_and_delete_user(gateway):
    user = _create_user(gateway, "a@example.com")
    updated = _payload(_call(gateway, "update_user", {"id": user["id"], "name": "Renamed"}))
    assert updated["user"]["name"] == "Renamed"
    assert updated["message"] == f"User with ID {user['id']} updated successfully"

    deleted = _payload(_call(gateway, "delete_user", {"id": user["id"]}))
    assert deleted["deletedUser"]["id"] == user["id"]

    result = _call(gateway, "delete_user", {"id": user["id"]})
    assert result.is_error is True
    assert result.first_text() == "User not found"


def test_list_users_messages(gateway):
    ada = _create_user(gateway, "ada@example.com", "Ada")
    _create_user(gateway, "bob@example.com", "Bob")
    _call(gateway, "create_task", {"title": "t", "userId": ada["id"]})

    listed = _payload(_call(gateway, "list_users"))
    assert listed["message"] == "Retrieved 2 users"
    assert listed["count"] == 2
    assert "tasks" in listed["users"][0]

    searched = _payload(_call(gateway, "list_users", {"search": "ada"}))
    assert searched["message"] == 'Found 1 users matching "ada"'
    assert [user["email"] for user in searched["users"]] == ["ada@example.com"]

    counted = _payload(_call(gateway, "list_users", {"withTaskCounts": True}))
    assert counted["message"] == "Retrieved 2 users with task counts"
    assert {user["email"]: user["taskCount"] for user in counted["users"]} == {
        "ada@example.com": 1,
        "bob@example.com": 0,
    }


def test_create_task_envelope(gateway):
    user = _create_user(gateway, "a@example.com")
    body = _payload(
        _call(
            gateway,
            "create_task",
            {"title": "Ship", "description": "soon", "priority": "HIGH", "userId": user["id"]},
        )
    )
    task = body["task"]
    assert body["message"] == f'Task created successfully with ID: "{task["id"]}"'
    assert task["priority"] == "HIGH"
    assert task["completed"] is False
    assert task["userId"] == user["id"]


def test_create_task_for_missing_user_is_error(gateway):
    result = _call(gateway, "create_task", {"title": "Ship", "userId": 42})
    assert result.is_error is True
    assert result.first_text() == "User not found"


def test_update_get_delete_task(gateway):
    user = _create_user(gateway, "a@example.com")
    task = _payload(_call(gateway, "create_task", {"title": "Ship", "userId": user["id"]}))["task"]

    updated = _payload(_call(gateway, "update_task", {"id": task["id"], "completed": True}))
    assert updated["updatedTask"]["completed"] is True
    assert updated["updatedTask"]["title"] == "Ship"

    fetched = _payload(_call(gateway, "get_task", {"id": task["id"]}))
    assert fetched["task"]["completed"] is True

    deleted = _payload(_call(gateway, "delete_task", {"id": task["id"]}))
    assert deleted["deletedTask"]["id"] == task["id"]

    missing = _payload(_call(gateway, "get_task", {"id": task["id"]}))
    assert missing["success"] is False
    assert missing["message"] == f"Task with ID {task['id']} not found"


def test_list_tasks_for_user(gateway):
    first = _create_user(gateway, "a@example.com")
    second = _create_user(gateway, "b@example.com")
    _call(gateway, "create_task", {"title": "a", "userId": first["id"]})
    _call(gateway, "create_task", {"title": "b", "userId": second["id"]})

    everything = _payload(_call(gateway, "list_tasks", {}))
    assert everything["message"] == "Retrieved 2 tasks"

    scoped = _payload(_call(gateway, "list_tasks", {"userId": first["id"]}))
    assert scoped["message"] == f"Retrieved 1 tasks for user {first['id']}"
    assert [task["title"] for task in scoped["tasks"]] == ["a"]
