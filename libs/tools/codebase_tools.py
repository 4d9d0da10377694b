from __future__ import annotations

import re
import shutil
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Dict, List

from libs.core import logging as core_logging
from libs.core.models import ToolResult, ToolSpec
from libs.tools.workspace import safe_workspace_path

LOGGER = core_logging.get_logger("codebase_tools")

DEFAULT_SEARCH_FILE_TYPES = [".ts", ".js", ".tsx", ".jsx", ".py", ".md"]
DEFAULT_EXCLUDE_DIRS = ["node_modules", ".git", "dist", "build"]
STRUCTURE_SKIP_DIRS = {"node_modules", "dist", "build", ".git", "__pycache__"}
MAX_SEARCH_RESULTS = 50

_FILE_TYPES = {
    ".py": "Python Module",
    ".ts": "TypeScript Module",
    ".tsx": "React TypeScript Component",
    ".js": "JavaScript Module",
    ".jsx": "React JavaScript Component",
    ".md": "Markdown Documentation",
    ".json": "JSON Configuration",
    ".css": "CSS Stylesheet",
}

_JS_FROM_IMPORT = re.compile(r"from ['\"]([^'\"]+)['\"]")
_JS_REQUIRE = re.compile(r"require\(['\"]([^'\"]+)['\"]\)")
_JS_DYNAMIC_IMPORT = re.compile(r"import\(['\"]([^'\"]+)['\"]\)")
_PY_IMPORT = re.compile(r"^import ([\w.]+)")
_PY_FROM_IMPORT = re.compile(r"^from ([\w.]+) import ")
_JS_NAMED_EXPORT = re.compile(r"export (?:const|let|var|function|class|interface|type|enum) (\w+)")
_JS_BRACE_EXPORT = re.compile(r"export \{([^}]+)\}")
_PY_TOP_LEVEL_DEF = re.compile(r"^(?:async def|def|class) ([A-Za-z]\w*)")


def register_codebase_tools(registry, root: Path) -> None:
    from libs.core.tool_registry import Tool

    registry.register(
        Tool(
            spec=ToolSpec(
                name="read_file",
                description=(
                    "Read a file from the project directory. Use it to understand existing code, "
                    "configuration, or any project file."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to file relative to project root",
                        },
                    },
                    "required": ["file_path"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_read_file, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="write_file",
                description=(
                    "Create or update a file in the project. Call get_project_context first to "
                    "understand coding standards."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path where to write the file relative to project root",
                        },
                        "content": {"type": "string", "description": "File content to write"},
                        "backup": {
                            "type": "boolean",
                            "description": "Create backup of existing file (default: true)",
                            "default": True,
                        },
                    },
                    "required": ["file_path", "content"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_write_file, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="delete_file",
                description=(
                    "Delete a file from the project directory. This operation cannot be undone."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to file to delete, relative to project root",
                        },
                        "confirm": {
                            "type": "boolean",
                            "description": "Confirmation flag to prevent accidental deletions (default: false)",
                            "default": False,
                        },
                    },
                    "required": ["file_path"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_delete_file, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="analyse_file",
                description=(
                    "Get file summary, dependencies, and exports. Analyses code structure, "
                    "imports, exports, and line statistics."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to file to analyse, relative to project root",
                        },
                    },
                    "required": ["file_path"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_analyse_file, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_file_structure",
                description=(
                    "Get an organized view of the project structure, to decide where new files "
                    "should be placed."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "directory": {
                            "type": "string",
                            "description": "Directory to analyze (optional, defaults to project root)",
                            "default": ".",
                        },
                        "max_depth": {
                            "type": "number",
                            "description": "Maximum depth to traverse (default: 3)",
                            "default": 3,
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            handler=partial(_get_file_structure, root),
        )
    )
    registry.register(
        Tool(
            spec=ToolSpec(
                name="search_codebase",
                description=(
                    "Search for code patterns, functions, or text across the entire project. "
                    "Matches common naming-convention variants of the query."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Search term or pattern to find"},
                        "file_types": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "File extensions to search (e.g., ['.ts', '.py'])",
                            "default": DEFAULT_SEARCH_FILE_TYPES,
                        },
                        "exclude_dirs": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Directories to exclude from search",
                            "default": DEFAULT_EXCLUDE_DIRS,
                        },
                    },
                    "required": ["query"],
                    "additionalProperties": False,
                },
            ),
            handler=partial(_search_codebase, root),
        )
    )


def _error_result(error_message: str, **extra: Any) -> ToolResult:
    return ToolResult.from_payload({"error": error_message, **extra})


def _require_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} is required")
    return value


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


def _read_file(root: Path, payload: Dict[str, Any]) -> ToolResult:
    file_path = _require_str(payload, "file_path")
    try:
        safe_path = safe_workspace_path(root, file_path)
        LOGGER.info("reading_file", path=str(safe_path))
        content = safe_path.read_text(encoding="utf-8")
        last_modified = _mtime_iso(safe_path)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        return _error_result(f"Failed to read {file_path}: {exc}", file_path=file_path)
    return ToolResult.from_payload(
        {
            "content": content,
            "file_path": file_path,
            "file_size": len(content),
            "last_modified": last_modified,
            "guidance": (
                "File read successfully. Use this content to understand existing patterns "
                "before writing new code."
            ),
        }
    )


def _write_file(root: Path, payload: Dict[str, Any]) -> ToolResult:
    file_path = _require_str(payload, "file_path")
    content = payload.get("content")
    if not isinstance(content, str):
        raise ValueError("content is required")
    backup = payload.get("backup", True)
    try:
        safe_path = safe_workspace_path(root, file_path)
        backup_path = None
        if backup and safe_path.is_file():
            backup_path = safe_path.with_name(safe_path.name + ".bak")
            shutil.copy2(safe_path, backup_path)
        safe_path.parent.mkdir(parents=True, exist_ok=True)
        safe_path.write_text(content, encoding="utf-8")
    except (OSError, ValueError) as exc:
        return _error_result(f"Failed to write {file_path}: {exc}", file_path=file_path)
    LOGGER.info("file_written", path=str(safe_path), size=len(content))
    return ToolResult.from_payload(
        {
            "success": f"File written: {file_path}",
            "file_size": len(content),
            "backup_path": str(backup_path.relative_to(root.resolve())) if backup_path else None,
            "guidance": "File created successfully. Consider running tests if this affects functionality.",
        }
    )


def _delete_file(root: Path, payload: Dict[str, Any]) -> ToolResult:
    file_path = _require_str(payload, "file_path")
    if not payload.get("confirm"):
        return _error_result(
            "Deletion requires confirmation",
            file_path=file_path,
            message="Set 'confirm: true' to proceed with deletion",
            guidance="This safety check prevents accidental file deletions.",
        )
    try:
        safe_path = safe_workspace_path(root, file_path)
        if not safe_path.is_file():
            return _error_result(
                f"File not found: {file_path}",
                file_path=file_path,
                guidance="Cannot delete a file that does not exist.",
            )
        size = safe_path.stat().st_size
        last_modified = _mtime_iso(safe_path)
        safe_path.unlink()
    except (OSError, ValueError) as exc:
        return _error_result(
            f"Failed to delete {file_path}: {exc}",
            file_path=file_path,
            guidance="Check file permissions and ensure the file path is correct.",
        )
    LOGGER.info("file_deleted", path=str(safe_path))
    return ToolResult.from_payload(
        {
            "success": f"File deleted: {file_path}",
            "file_path": file_path,
            "file_size": size,
            "last_modified": last_modified,
            "guidance": "File has been permanently deleted. This operation cannot be undone.",
        }
    )


def extract_imports(content: str) -> List[str]:
    imports: List[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("import ") or stripped.startswith("from "):
            for pattern in (_JS_FROM_IMPORT, _PY_IMPORT, _PY_FROM_IMPORT):
                match = pattern.search(stripped)
                if match:
                    imports.append(match.group(1))
                    break
        for pattern in (_JS_REQUIRE, _JS_DYNAMIC_IMPORT):
            match = pattern.search(stripped)
            if match:
                imports.append(match.group(1))
    return list(dict.fromkeys(imports))


def extract_exports(content: str) -> List[str]:
    exports: List[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("export "):
            named = _JS_NAMED_EXPORT.search(stripped)
            if named:
                exports.append(named.group(1))
            braced = _JS_BRACE_EXPORT.search(stripped)
            if braced:
                exports.extend(
                    item.strip().split(" as ")[0] for item in braced.group(1).split(",") if item.strip()
                )
            if stripped.startswith("export default"):
                exports.append("default")
        elif "module.exports" in stripped:
            exports.append("module.exports")
        else:
            top_level = _PY_TOP_LEVEL_DEF.match(line)
            if top_level:
                exports.append(top_level.group(1))
    return list(dict.fromkeys(exports))


def _purpose(content: str, extension: str) -> str:
    if extension == ".md":
        return "Documentation file"
    if extension == ".json":
        return "Configuration or data file"
    if extension == ".css":
        return "Styling file"
    if "def test_" in content or "describe(" in content or "test(" in content:
        return "Test file"
    if "React" in content or "useState" in content or "useEffect" in content:
        return "React component or hook"
    if "class " in content:
        return "Class definition"
    if "def " in content or "function " in content:
        return "Function utilities"
    if "interface " in content or "type " in content:
        return "Type definitions"
    return "General purpose file"


def _analyse_file(root: Path, payload: Dict[str, Any]) -> ToolResult:
    file_path = _require_str(payload, "file_path")
    try:
        safe_path = safe_workspace_path(root, file_path)
        LOGGER.info("analysing_file", path=str(safe_path))
        content = safe_path.read_text(encoding="utf-8")
        last_modified = _mtime_iso(safe_path)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        return _error_result(
            f"Failed to analyse {file_path}: {exc}",
            file_path=file_path,
            guidance="Check that the file exists and is readable. Ensure the file path is correct.",
        )

    extension = safe_path.suffix
    lines = content.split("\n")
    comment_prefixes = ("#", "//", "/*", "*")
    imports = extract_imports(content)
    exports = extract_exports(content)
    internal = [item for item in imports if item.startswith((".", "/"))]
    external = [item for item in imports if item not in internal]
    return ToolResult.from_payload(
        {
            "file_path": file_path,
            "file_name": safe_path.name,
            "file_extension": extension,
            "file_type": _FILE_TYPES.get(extension, "Unknown"),
            "purpose": _purpose(content, extension),
            "file_stats": {
                "totalLines": len(lines),
                "codeLines": sum(1 for line in lines if line.strip()),
                "commentLines": sum(1 for line in lines if line.strip().startswith(comment_prefixes)),
                "fileSize": len(content),
                "last_modified": last_modified,
            },
            "dependencies": {
                "all_imports": imports,
                "external_packages": external,
                "internal_modules": internal,
                "scoped_packages": [item for item in imports if item.startswith("@")],
            },
            "exports": exports,
            "guidance": (
                "Use this analysis to understand file relationships, optimize imports, "
                "and maintain code quality."
            ),
        }
    )


def build_structure(directory: Path, max_depth: int, depth: int = 0) -> Any:
    if depth >= max_depth:
        return "..."
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        return {"error": str(exc)}
    structure: Dict[str, Any] = {}
    for entry in entries:
        if entry.name.startswith(".") or entry.name in STRUCTURE_SKIP_DIRS:
            continue
        if entry.is_symlink():
            continue
        if entry.is_dir():
            structure[entry.name + "/"] = build_structure(entry, max_depth, depth + 1)
        else:
            structure[entry.name] = entry.suffix or "file"
    return structure


def _get_file_structure(root: Path, payload: Dict[str, Any]) -> ToolResult:
    directory = payload.get("directory") or "."
    max_depth = int(payload.get("max_depth") or 3)
    try:
        safe_path = safe_workspace_path(root, directory)
    except ValueError as exc:
        return _error_result(f"Failed to analyze directory structure: {exc}", directory=directory)
    return ToolResult.from_payload(
        {
            "directory": directory,
            "structure": build_structure(safe_path, max_depth),
            "guidance": (
                "Use this structure to place new files in appropriate locations following "
                "project conventions. Hidden files and build directories are omitted."
            ),
        }
    )


def generate_search_variants(query: str) -> List[str]:
    variants = [query]
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", re.sub(r"[_-]", " ", query))
    words = [word for word in spaced.lower().split() if word]
    if len(words) > 1:
        capitalized = [word[:1].upper() + word[1:] for word in words]
        variants.extend(
            [
                words[0] + "".join(capitalized[1:]),
                "".join(capitalized),
                "_".join(words),
                "-".join(words),
                "_".join(words).upper(),
                "".join(words),
                "".join(words).upper(),
            ]
        )
    return list(dict.fromkeys(variants))


def _search_codebase(root: Path, payload: Dict[str, Any]) -> ToolResult:
    query = _require_str(payload, "query")
    file_types = payload.get("file_types") or DEFAULT_SEARCH_FILE_TYPES
    exclude_dirs = set(payload.get("exclude_dirs") or DEFAULT_EXCLUDE_DIRS)
    start_path = root.resolve()
    variants = generate_search_variants(query)
    lowered_variants = [(variant, variant.lower()) for variant in variants]
    LOGGER.info("searching_codebase", query=query, variants=variants)

    results: List[Dict[str, Any]] = []
    for file_path in _iter_files(start_path, exclude_dirs):
        if file_path.suffix not in file_types:
            continue
        try:
            lines = file_path.read_text(encoding="utf-8").split("\n")
        except (OSError, UnicodeDecodeError):
            LOGGER.info("search_skipped_file", path=str(file_path))
            continue
        relative_path = str(file_path.relative_to(start_path))
        for index, line in enumerate(lines):
            lowered = line.lower()
            matched = [variant for variant, needle in lowered_variants if needle in lowered]
            if not matched:
                continue
            context_start = max(0, index - 1)
            context_end = min(len(lines), index + 2)
            results.append(
                {
                    "file": relative_path,
                    "line_number": index + 1,
                    "line_content": line.strip(),
                    "matched_variants": matched,
                    "context": [
                        {
                            "line_number": context_start + offset + 1,
                            "content": lines[context_start + offset],
                            "is_match": context_start + offset == index,
                        }
                        for offset in range(context_end - context_start)
                    ],
                }
            )

    unique_files = len({result["file"] for result in results})
    LOGGER.info("search_completed", matches=len(results), files=unique_files)
    return ToolResult.from_payload(
        {
            "query": query,
            "search_variants": variants,
            "file_types": list(file_types),
            "exclude_dirs": sorted(exclude_dirs),
            "results": results[:MAX_SEARCH_RESULTS],
            "total_matches": len(results),
            "unique_files": unique_files,
            "guidance": (
                f"SEARCH RESULTS FOR \"{query}\":\n"
                f"- Generated variants: {', '.join(variants)}\n"
                f"- Found {len(results)} matches across {unique_files} files\n"
                "- Review existing implementations before creating new code\n"
                "- Look for patterns and conventions in the results\n"
                "- Consider reusing or extending existing functionality"
            ),
            "truncated": (
                f"Results limited to first {MAX_SEARCH_RESULTS} matches"
                if len(results) > MAX_SEARCH_RESULTS
                else None
            ),
        }
    )


def _iter_files(directory: Path, exclude_dirs: set[str]):
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError:
        LOGGER.info("search_skipped_directory", path=str(directory))
        return
    for entry in entries:
        if entry.is_symlink():
            continue
        if entry.is_dir():
            if entry.name not in exclude_dirs:
                yield from _iter_files(entry, exclude_dirs)
        elif entry.is_file():
            yield entry
