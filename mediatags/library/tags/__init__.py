"""
MediaTags - Tag Hierarchy Engine

Public surface is `TagManager`; the other classes are its collaborators.
"""
from mediatags.library.tags.models import Tag
from mediatags.library.tags.exceptions import (
    TagError, TagValidationError, TagNotFoundError, TagWriteError, TagMergeError, RecomputeError,
)
from mediatags.library.tags.results import (
    CascadeResult, CreateTagResult, MergeResult, RejectedRelations, RelationDiff,
    RepairResult, TagCountUpdate, TagEditSummary, TagRef, TagWithRelations,
)
from mediatags.library.tags.store import TagStore, MongoTagStore, TagUpdate, TagDelete
from mediatags.library.tags.closure import ClosureCalculator, HierarchyOverlay
from mediatags.library.tags.relations import CycleGuard, HierarchyValidation, diff_ids
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.manager import TagManager

__all__ = [
    'Tag',
    'TagError', 'TagValidationError', 'TagNotFoundError', 'TagWriteError', 'TagMergeError', 'RecomputeError',
    'CascadeResult', 'CreateTagResult', 'MergeResult', 'RejectedRelations', 'RelationDiff',
    'RepairResult', 'TagCountUpdate', 'TagEditSummary', 'TagRef', 'TagWithRelations',
    'TagStore', 'MongoTagStore', 'TagUpdate', 'TagDelete',
    'ClosureCalculator', 'HierarchyOverlay',
    'CycleGuard', 'HierarchyValidation', 'diff_ids',
    'HierarchyMutationPlanner',
    'TagManager',
]
