from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from libs.core.tool_registry import ToolRegistry
from libs.tools import codebase_tools
from libs.tools.workspace import WorkspacePathError, safe_workspace_path


def _registry(root: Path) -> ToolRegistry:
    registry = ToolRegistry()
    codebase_tools.register_codebase_tools(registry, root)
    return registry.freeze()


def _run(root: Path, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    result = _registry(root).get(name).handler(arguments)
    return json.loads(result.first_text())


def test_safe_workspace_path_rejects_escape(tmp_path):
    assert safe_workspace_path(tmp_path, "a/b.txt") == (tmp_path / "a" / "b.txt").resolve()
    assert safe_workspace_path(tmp_path, None) == tmp_path.resolve()
    with pytest.raises(WorkspacePathError):
        safe_workspace_path(tmp_path, "../outside.txt")
    with pytest.raises(WorkspacePathError):
        safe_workspace_path(tmp_path, "/etc/passwd")


def test_read_file(tmp_path):
    (tmp_path / "notes.md").write_text("# Notes\nhello", encoding="utf-8")
    body = _run(tmp_path, "read_file", {"file_path": "notes.md"})
    assert body["content"] == "# Notes\nhello"
    assert body["file_size"] == len("# Notes\nhello")
    assert body["last_modified"]


def test_read_missing_file_reports_error(tmp_path):
    body = _run(tmp_path, "read_file", {"file_path": "missing.py"})
    assert body["error"].startswith("Failed to read missing.py")


def test_read_file_outside_workspace_reports_error(tmp_path):
    body = _run(tmp_path, "read_file", {"file_path": "../secret.txt"})
    assert "Invalid path outside workspace" in body["error"]


def test_read_file_requires_path(tmp_path):
    with pytest.raises(ValueError, match="file_path is required"):
        _registry(tmp_path).get("read_file").handler({})


def test_write_file_creates_parents_and_backup(tmp_path):
    body = _run(tmp_path, "write_file", {"file_path": "src/app.py", "content": "print(1)\n"})
    assert body["success"] == "File written: src/app.py"
    assert body["backup_path"] is None
    assert (tmp_path / "src" / "app.py").read_text(encoding="utf-8") == "print(1)\n"

    body = _run(tmp_path, "write_file", {"file_path": "src/app.py", "content": "print(2)\n"})
    assert body["backup_path"] == str(Path("src") / "app.py.bak")
    assert (tmp_path / "src" / "app.py.bak").read_text(encoding="utf-8") == "print(1)\n"
    assert (tmp_path / "src" / "app.py").read_text(encoding="utf-8") == "print(2)\n"


def test_write_file_without_backup(tmp_path):
    (tmp_path / "a.txt").write_text("old", encoding="utf-8")
    body = _run(tmp_path, "write_file", {"file_path": "a.txt", "content": "new", "backup": False})
    assert body["backup_path"] is None
    assert not (tmp_path / "a.txt.bak").exists()


def test_delete_file_requires_confirmation(tmp_path):
    target = tmp_path / "old.py"
    target.write_text("x = 1\n", encoding="utf-8")

    body = _run(tmp_path, "delete_file", {"file_path": "old.py"})
    assert body["error"] == "Deletion requires confirmation"
    assert target.exists()

    body = _run(tmp_path, "delete_file", {"file_path": "old.py", "confirm": True})
    assert body["success"] == "File deleted: old.py"
    assert body["file_size"] == 6
    assert not target.exists()

    body = _run(tmp_path, "delete_file", {"file_path": "old.py", "confirm": True})
    assert body["error"] == "File not found: old.py"


def test_analyse_file(tmp_path):
    source = (
        "import React, { useState } from 'react';\n"
        "import { helper } from './helper';\n"
        "import '@scope/pkg';\n"
        "// a comment\n"
        "export function Widget() { return useState(0); }\n"
        "export { helper as renamed, other };\n"
        "export default Widget;\n"
    )
    (tmp_path / "Widget.tsx").write_text(source, encoding="utf-8")
    body = _run(tmp_path, "analyse_file", {"file_path": "Widget.tsx"})
    assert body["file_type"] == "React TypeScript Component"
    assert body["purpose"] == "React component or hook"
    assert body["dependencies"]["all_imports"] == ["react", "./helper"]
    assert body["dependencies"]["internal_modules"] == ["./helper"]
    assert body["dependencies"]["external_packages"] == ["react"]
    assert body["exports"] == ["Widget", "helper", "other", "default"]
    assert body["file_stats"]["commentLines"] == 1
    assert body["file_stats"]["totalLines"] == 8


def test_extract_python_imports_and_exports():
    source = "import os\nfrom pathlib import Path\n\n\ndef run():\n    pass\n\n\nclass Runner:\n    pass\n"
    assert codebase_tools.extract_imports(source) == ["os", "pathlib"]
    assert codebase_tools.extract_exports(source) == ["run", "Runner"]


def test_get_file_structure_skips_hidden_and_build_dirs(tmp_path):
    (tmp_path / "src" / "deep" / "deeper").mkdir(parents=True)
    (tmp_path / "src" / "main.py").write_text("", encoding="utf-8")
    (tmp_path / "src" / "deep" / "deeper" / "x.py").write_text("", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / ".env").write_text("", encoding="utf-8")
    (tmp_path / "README").write_text("", encoding="utf-8")

    body = _run(tmp_path, "get_file_structure", {"max_depth": 2})
    assert body["directory"] == "."
    assert body["structure"] == {
        "README": "file",
        "src/": {"deep/": "...", "main.py": ".py"},
    }


def test_generate_search_variants():
    variants = codebase_tools.generate_search_variants("userName")
    assert variants[0] == "userName"
    for expected in ["UserName", "user_name", "user-name", "USER_NAME", "username", "USERNAME"]:
        assert expected in variants
    assert codebase_tools.generate_search_variants("token") == ["token"]


def test_search_codebase_matches_variants(tmp_path):
    (tmp_path / "a.py").write_text("def get_user_name():\n    return 1\n", encoding="utf-8")
    (tmp_path / "b.ts").write_text("const x = 1;\nconst userName = 'a';\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "c.js").write_text("userName\n", encoding="utf-8")
    (tmp_path / "d.txt").write_text("userName\n", encoding="utf-8")

    body = _run(tmp_path, "search_codebase", {"query": "userName"})
    assert body["total_matches"] == 2
    assert body["unique_files"] == 2
    assert body["truncated"] is None
    by_file = {result["file"]: result for result in body["results"]}
    assert "user_name" in by_file["a.py"]["matched_variants"]
    assert by_file["b.ts"]["line_number"] == 2
    assert [line["is_match"] for line in by_file["b.ts"]["context"]] == [False, True, False]
    assert body["guidance"].startswith('SEARCH RESULTS FOR "userName":')
    assert "user_name" in body["guidance"]


def test_search_codebase_truncates_results(tmp_path):
    (tmp_path / "many.py").write_text("needle\n" * 60, encoding="utf-8")
    body = _run(tmp_path, "search_codebase", {"query": "needle"})
    assert body["total_matches"] == 60
    assert len(body["results"]) == codebase_tools.MAX_SEARCH_RESULTS
    assert body["truncated"] == "Results limited to first 50 matches"
    assert "Found 60 matches across 1 files" in body["guidance"]


def _workspace_with_linked_secret(tmp_path: Path) -> Path:
    workspace = tmp_path / "ws"
    outside = tmp_path / "outside"
    workspace.mkdir()
    outside.mkdir()
    (outside / "secret.py").write_text("API_TOKEN = 'hunter2'\n", encoding="utf-8")
    (workspace / "app.py").write_text("print('hello')\n", encoding="utf-8")
    (workspace / "link").symlink_to(outside, target_is_directory=True)
    (workspace / "secret_link.py").symlink_to(outside / "secret.py")
    return workspace


def test_search_codebase_does_not_follow_symlinks_out_of_workspace(tmp_path):
    workspace = _workspace_with_linked_secret(tmp_path)
    body = _run(workspace, "search_codebase", {"query": "API_TOKEN"})
    assert body["total_matches"] == 0
    assert body["results"] == []


def test_get_file_structure_omits_symlinks(tmp_path):
    workspace = _workspace_with_linked_secret(tmp_path)
    body = _run(workspace, "get_file_structure", {})
    assert body["structure"] == {"app.py": ".py"}


def test_read_file_through_symlink_outside_workspace_reports_error(tmp_path):
    workspace = _workspace_with_linked_secret(tmp_path)
    body = _run(workspace, "read_file", {"file_path": "link/secret.py"})
    assert "Invalid path outside workspace" in body["error"]
    assert "content" not in body
