"""
MediaTags - Tag Engine Errors
"""
from typing import Any, List, Optional


class TagError(Exception):
    """Base class for tag engine failures."""


class TagValidationError(TagError, ValueError):
    """Input rejected before any write (blank label, unknown ids, ...)."""


class TagNotFoundError(TagValidationError):
    def __init__(self, tag_id: Any):
        self.tag_id = tag_id
        super().__init__(f"Tag not found: {tag_id}")


class TagWriteError(TagError):
    """
    The store rejected a bulk write part way through.

    Carries the serialized operations so the failure can be logged in full.
    No rollback happens; refresh_tag_relations heals half-written edges.
    """
    def __init__(self, message: str, operations: Optional[List[dict]] = None):
        super().__init__(message)
        self.operations = operations or []


class TagMergeError(TagError):
    def __init__(self, tag_id_to_keep: Any, tag_id_to_merge: Any, cause: Exception):
        self.tag_id_to_keep = tag_id_to_keep
        self.tag_id_to_merge = tag_id_to_merge
        super().__init__(f"Failed to merge tag {tag_id_to_merge} into {tag_id_to_keep}: {cause}")


class RecomputeError(TagError):
    """A per-tag recomputation kept failing after all attempts."""
    def __init__(self, step: str, tag_id: Any, cause: Exception):
        self.step = step
        self.tag_id = tag_id
        super().__init__(f"{step} failed for tag {tag_id}: {cause}")
