"""OGA Convert Service - Utility modules."""

from app.utils.paths import ArtifactPaths, new_artifact_paths
from app.utils.scratch_io import (
    cleanup_orphan_scratch_files,
    ensure_directory,
    remove_quietly,
    write_scratch_file,
)

__all__ = [
    # paths
    "ArtifactPaths",
    "new_artifact_paths",
    # scratch_io
    "write_scratch_file",
    "remove_quietly",
    "ensure_directory",
    "cleanup_orphan_scratch_files",
]
