from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import logging as core_logging, models
from .errors import StoreError
from .records import TaskRecord, UserRecord
from .validation import TaskCreate, TaskUpdate, UserCreate, UserUpdate

LOGGER = core_logging.get_logger("store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _task_from_record(record: TaskRecord) -> models.Task:
    return models.Task(
        id=record.id,
        title=record.title,
        description=record.description,
        priority=models.Priority(record.priority),
        completed=bool(record.completed),
        user_id=record.user_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _user_from_record(
    record: UserRecord, include_tasks: bool = True, include_count: bool = False
) -> models.User:
    return models.User(
        id=record.id,
        email=record.email,
        name=record.name,
        created_at=record.created_at,
        updated_at=record.updated_at,
        tasks=[_task_from_record(task) for task in record.tasks] if include_tasks else [],
        task_count=len(record.tasks) if include_count else None,
    )


def _find_user(db: Session, user_id: int) -> Optional[UserRecord]:
    return db.query(UserRecord).filter(UserRecord.id == user_id).first()


def _find_task(db: Session, task_id: int) -> Optional[TaskRecord]:
    return db.query(TaskRecord).filter(TaskRecord.id == task_id).first()


def _require_user(db: Session, user_id: int) -> UserRecord:
    record = _find_user(db, user_id)
    if not record:
        raise StoreError("User not found", status_code=404)
    return record


def _require_task(db: Session, task_id: int) -> TaskRecord:
    if task_id <= 0:
        raise StoreError("Invalid task ID", status_code=400)
    record = _find_task(db, task_id)
    if not record:
        raise StoreError("Task not found", status_code=404)
    return record


def _ensure_email_available(db: Session, email: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(UserRecord).filter(UserRecord.email == email)
    if exclude_id is not None:
        query = query.filter(UserRecord.id != exclude_id)
    if query.first():
        raise StoreError(f"User with email {email} already exists", status_code=409)


def _commit(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise StoreError(conflict_detail, status_code=409) from exc


def create_user(db: Session, payload: UserCreate) -> models.User:
    _ensure_email_available(db, payload.email)
    now = _utcnow()
    record = UserRecord(email=payload.email, name=payload.name, created_at=now, updated_at=now)
    db.add(record)
    _commit(db, f"User with email {payload.email} already exists")
    db.refresh(record)
    core_logging.log_event(LOGGER, "user_created", {"user_id": record.id})
    return _user_from_record(record)


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    record = _find_user(db, user_id)
    return _user_from_record(record) if record else None


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    record = (
        db.query(UserRecord).filter(UserRecord.email == email.strip().lower()).first()
    )
    return _user_from_record(record) if record else None


def list_users(
    db: Session, search: Optional[str] = None, with_task_counts: bool = False
) -> List[models.User]:
    query = db.query(UserRecord)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(UserRecord.name.ilike(pattern), UserRecord.email.ilike(pattern)))
    records = query.order_by(UserRecord.created_at.desc(), UserRecord.id.desc()).all()
    include_tasks = not (search or with_task_counts)
    return [
        _user_from_record(record, include_tasks=include_tasks, include_count=with_task_counts)
        for record in records
    ]


def update_user(db: Session, user_id: int, payload: UserUpdate) -> models.User:
    record = _require_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        _ensure_email_available(db, changes["email"], exclude_id=user_id)
    for key, value in changes.items():
        setattr(record, key, value)
    record.updated_at = _utcnow()
    _commit(db, f"User with email {changes.get('email')} already exists")
    db.refresh(record)
    core_logging.log_event(LOGGER, "user_updated", {"user_id": user_id, "fields": sorted(changes)})
    return _user_from_record(record, include_tasks=False)


def delete_user(db: Session, user_id: int) -> models.User:
    record = _require_user(db, user_id)
    deleted = _user_from_record(record, include_tasks=False)
    db.delete(record)
    db.commit()
    core_logging.log_event(LOGGER, "user_deleted", {"user_id": user_id})
    return deleted


def create_task(db: Session, payload: TaskCreate) -> models.Task:
    owner = _require_user(db, payload.user_id)
    now = _utcnow()
    record = TaskRecord(
        title=payload.title,
        description=payload.description,
        priority=payload.priority.value,
        completed=False,
        user_id=payload.user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    db.expire(owner, ["tasks"])
    core_logging.log_event(LOGGER, "task_created", {"task_id": record.id, "user_id": record.user_id})
    return _task_from_record(record)


def get_task(db: Session, task_id: int) -> Optional[models.Task]:
    if task_id <= 0:
        raise StoreError("Invalid task ID", status_code=400)
    record = _find_task(db, task_id)
    return _task_from_record(record) if record else None


def list_tasks(db: Session, user_id: Optional[int] = None) -> List[models.Task]:
    query = db.query(TaskRecord)
    if user_id is not None:
        query = query.filter(TaskRecord.user_id == user_id)
    records = query.order_by(TaskRecord.created_at.desc(), TaskRecord.id.desc()).all()
    return [_task_from_record(record) for record in records]


def update_task(db: Session, task_id: int, payload: TaskUpdate) -> models.Task:
    record = _require_task(db, task_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(record, key, value.value if isinstance(value, models.Priority) else value)
    record.updated_at = _utcnow()
    db.commit()
    db.refresh(record)
    core_logging.log_event(LOGGER, "task_updated", {"task_id": task_id, "fields": sorted(changes)})
    return _task_from_record(record)


def delete_task(db: Session, task_id: int) -> models.Task:
    record = _require_task(db, task_id)
    deleted = _task_from_record(record)
    db.delete(record)
    db.commit()
    owner = db.get(UserRecord, deleted.user_id)
    if owner is not None:
        db.expire(owner, ["tasks"])
    core_logging.log_event(LOGGER, "task_deleted", {"task_id": task_id})
    return deleted


def complete_task(db: Session, task_id: int) -> models.Task:
    record = _require_task(db, task_id)
    if record.completed:
        raise StoreError("Task is already completed", status_code=409)
    return _set_completed(db, record, True)


def uncomplete_task(db: Session, task_id: int) -> models.Task:
    record = _require_task(db, task_id)
    if not record.completed:
        raise StoreError("Task is already incomplete", status_code=409)
    return _set_completed(db, record, False)


def _set_completed(db: Session, record: TaskRecord, completed: bool) -> models.Task:
    record.completed = completed
    record.updated_at = _utcnow()
    db.commit()
    db.refresh(record)
    return _task_from_record(record)
