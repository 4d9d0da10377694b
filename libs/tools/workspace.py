from __future__ import annotations

import os
from pathlib import Path


class WorkspacePathError(ValueError):
    pass


def workspace_root() -> Path:
    env_root = os.getenv("WORKSPACE_DIR")
    if env_root:
        return Path(env_root).resolve()
    return Path.cwd().resolve()


def safe_workspace_path(root: Path, path: str | None, default_name: str = ".") -> Path:
    base_dir = root.resolve()
    candidate = Path(path or default_name)
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (base_dir / candidate).resolve()
    if resolved != base_dir and base_dir not in resolved.parents:
        raise WorkspacePathError("Invalid path outside workspace")
    return resolved
