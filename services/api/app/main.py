from __future__ import annotations

import os
from typing import Generator, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from sqlalchemy.orm import Session

from libs.core import crud_store, logging as core_logging, models
from libs.core.database import SessionLocal, init_db
from libs.core.errors import StoreError
from libs.core.validation import TaskCreate, TaskUpdate, UserCreate, UserUpdate

core_logging.configure_logging("api")
LOGGER = core_logging.get_logger("api")

app = FastAPI(title="Task Tool Gateway API")

cors_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.on_event("startup")
def _init_db() -> None:
    init_db()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _http_error(exc: StoreError) -> HTTPException:
    LOGGER.info("store_error", detail=exc.detail, status_code=exc.status_code)
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@app.get("/users", response_model=List[models.User])
def list_users(
    search: Optional[str] = None,
    with_task_counts: bool = False,
    db: Session = Depends(get_db),
) -> List[models.User]:
    return crud_store.list_users(db, search=search, with_task_counts=with_task_counts)


@app.post("/users", response_model=models.User, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)) -> models.User:
    try:
        return crud_store.create_user(db, payload)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.get("/users/{user_id}", response_model=models.User)
def get_user(user_id: int, db: Session = Depends(get_db)) -> models.User:
    user = crud_store.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.patch("/users/{user_id}", response_model=models.User)
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db)) -> models.User:
    try:
        return crud_store.update_user(db, user_id, payload)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.delete("/users/{user_id}", response_model=models.User)
def delete_user(user_id: int, db: Session = Depends(get_db)) -> models.User:
    try:
        return crud_store.delete_user(db, user_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.get("/tasks", response_model=List[models.Task])
def list_tasks(user_id: Optional[int] = None, db: Session = Depends(get_db)) -> List[models.Task]:
    return crud_store.list_tasks(db, user_id=user_id)


@app.post("/tasks", response_model=models.Task, status_code=201)
def create_task(payload: TaskCreate, db: Session = Depends(get_db)) -> models.Task:
    try:
        return crud_store.create_task(db, payload)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.get("/tasks/{task_id}", response_model=models.Task)
def get_task(task_id: int, db: Session = Depends(get_db)) -> models.Task:
    try:
        task = crud_store.get_task(db, task_id)
    except StoreError as exc:
        raise _http_error(exc) from exc
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.patch("/tasks/{task_id}", response_model=models.Task)
def update_task(task_id: int, payload: TaskUpdate, db: Session = Depends(get_db)) -> models.Task:
    try:
        return crud_store.update_task(db, task_id, payload)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.delete("/tasks/{task_id}", response_model=models.Task)
def delete_task(task_id: int, db: Session = Depends(get_db)) -> models.Task:
    try:
        return crud_store.delete_task(db, task_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.post("/tasks/{task_id}/complete", response_model=models.Task)
def complete_task(task_id: int, db: Session = Depends(get_db)) -> models.Task:
    try:
        return crud_store.complete_task(db, task_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


@app.post("/tasks/{task_id}/uncomplete", response_model=models.Task)
def uncomplete_task(task_id: int, db: Session = Depends(get_db)) -> models.Task:
    try:
        return crud_store.uncomplete_task(db, task_id)
    except StoreError as exc:
        raise _http_error(exc) from exc


def run() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
    )
