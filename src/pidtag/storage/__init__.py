"""Storage layer for P&ID projects.

Projects persist as a single JSON snapshot file.
"""

from .project_io import (
    ProjectValidationError,
    build_snapshot,
    dump_project,
    load_project,
    loads_project,
    sanitize_text,
    save_project,
    validate_project_data,
)

__all__ = [
    "ProjectValidationError",
    "build_snapshot",
    "dump_project",
    "load_project",
    "loads_project",
    "sanitize_text",
    "save_project",
    "validate_project_data",
]
