import json

from libs.core.tool_registry import ToolRegistry
from libs.tools.project_tools import markdown_title, register_project_tools


def _run(root, name):
    registry = ToolRegistry()
    register_project_tools(registry, root)
    return json.loads(registry.get(name).handler({}).first_text())


def test_project_context_reads_configured_file(tmp_path, monkeypatch):
    monkeypatch.setenv("PROJECT_CONFIG_PATH", "config/project.md")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "project.md").write_text("# Todo Service\n\nFastAPI + SQLite\n", encoding="utf-8")

    body = _run(tmp_path, "get_project_context")
    assert body["project_name"] == "Todo Service"
    assert "FastAPI + SQLite" in body["configuration"]
    assert "config/project.md" in body["guidance"]


def test_project_context_missing_file(tmp_path, monkeypatch):
    monkeypatch.delenv("PROJECT_CONFIG_PATH", raising=False)
    body = _run(tmp_path, "get_project_context")
    assert set(body) == {"error"}
    assert "docs/project_config.md" in body["error"]


def test_coding_standards(tmp_path, monkeypatch):
    monkeypatch.delenv("CODING_STANDARDS_PATH", raising=False)
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "coding_standards.md").write_text("Use type hints.\n", encoding="utf-8")

    body = _run(tmp_path, "get_coding_standards")
    assert body == {"title": "Coding Standards", "standards_content": "Use type hints.\n"}


def test_coding_standards_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CODING_STANDARDS_PATH", "nope.md")
    body = _run(tmp_path, "get_coding_standards")
    assert body["error"].startswith("Coding standards file not found")
    assert body["file_path"] == "nope.md"


def test_markdown_title():
    assert markdown_title("intro\n# Heading \nbody", "x") == "Heading"
    assert markdown_title("## Not a title", "fallback") == "fallback"
