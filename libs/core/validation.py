from __future__ import annotations

import re
from typing import Annotated, Any, Dict, Optional, Type, TypeVar

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .models import Priority

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not _EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email address.")
    if len(email) > 255:
        raise ValueError("Email must be at most 255 characters.")
    return email


def _normalize_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValueError("Name cannot be empty.")
    if len(name) > 100:
        raise ValueError("Name must be at most 100 characters.")
    return name


def _normalize_title(value: str) -> str:
    title = value.strip()
    if not title:
        raise ValueError("Title is required.")
    if len(title) > 255:
        raise ValueError("Title must be at most 255 characters.")
    return title


def _normalize_description(value: str) -> str:
    description = value.strip()
    if len(description) > 1000:
        raise ValueError("Description must be at most 1000 characters.")
    return description


Email = Annotated[str, AfterValidator(_normalize_email)]
Name = Annotated[str, AfterValidator(_normalize_name)]
Title = Annotated[str, AfterValidator(_normalize_title)]
Description = Annotated[str, AfterValidator(_normalize_description)]


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class UserCreate(_Input):
    email: Email
    name: Optional[Name] = None


class UserUpdate(_Input):
    email: Optional[Email] = None
    name: Optional[Name] = None


class TaskCreate(_Input):
    title: Title
    description: Optional[Description] = None
    priority: Priority = Priority.MEDIUM
    user_id: int = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("user_id", "userId"),
    )


class TaskUpdate(_Input):
    title: Optional[Title] = None
    description: Optional[Description] = None
    priority: Optional[Priority] = None
    completed: Optional[bool] = None


def decode_arguments(model: Type[ModelT], arguments: Dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(map(str, err['loc'])) or '<root>'}: {_strip_prefix(err['msg'])}"
            for err in exc.errors()[:5]
        )
        raise ValueError(f"Invalid arguments: {messages}") from exc


def _strip_prefix(message: str) -> str:
    return message[len("Value error, "):] if message.startswith("Value error, ") else message
