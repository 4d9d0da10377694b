__all__ = [
    "models",
    "errors",
    "validation",
    "database",
    "records",
    "crud_store",
    "tool_registry",
    "logging",
]
