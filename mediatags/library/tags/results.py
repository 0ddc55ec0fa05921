"""
MediaTags - Tag Engine Results

Operations report accepted changes and per-item rejections together instead
of failing a whole batch on its first bad edge.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from bson import ObjectId

from mediatags.library.tags.models import Tag


@dataclass
class RelationDiff:
    """Ids added to / removed from one adjacency list."""
    added: List[ObjectId] = field(default_factory=list)
    removed: List[ObjectId] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    def ids(self) -> List[ObjectId]:
        return [*self.added, *self.removed]


@dataclass
class TagRelationChange:
    child_ids: RelationDiff = field(default_factory=RelationDiff)
    parent_ids: RelationDiff = field(default_factory=RelationDiff)

    @property
    def is_empty(self) -> bool:
        return self.child_ids.is_empty and self.parent_ids.is_empty

    def endpoint_ids(self) -> List[ObjectId]:
        return [*self.child_ids.ids(), *self.parent_ids.ids()]


@dataclass
class TagRef:
    id: ObjectId
    label: Optional[str] = None


@dataclass
class RejectedRelations:
    """Edges dropped from an edit because they would create a cycle."""
    tag_id: ObjectId
    tag_label: Optional[str]
    invalid_child_tags: List[TagRef] = field(default_factory=list)
    invalid_parent_tags: List[TagRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag_id": str(self.tag_id),
            "tag_label": self.tag_label,
            "invalid_child_tags": [{"id": str(t.id), "label": t.label} for t in self.invalid_child_tags],
            "invalid_parent_tags": [{"id": str(t.id), "label": t.label} for t in self.invalid_parent_tags],
        }


@dataclass
class TagCountUpdate:
    tag_id: ObjectId
    count: int


@dataclass
class TagThumbUpdate:
    tag_id: ObjectId
    thumb: Optional[dict]


@dataclass
class CascadeResult:
    affected_tag_ids: List[ObjectId] = field(default_factory=list)
    # store name -> ids of records whose ancestor field was rewritten
    updated_records: Dict[str, List[ObjectId]] = field(default_factory=dict)
    count_updates: List[TagCountUpdate] = field(default_factory=list)


@dataclass
class TagEditSummary:
    """Accepted adjacency changes per tag plus the edges that were rejected."""
    date_modified: datetime
    changes: Dict[ObjectId, TagRelationChange] = field(default_factory=dict)
    errors: List[RejectedRelations] = field(default_factory=list)
    cascade: Optional[CascadeResult] = None

    @property
    def changed_child_ids(self) -> RelationDiff:
        return _merge_diffs(c.child_ids for c in self.changes.values())

    @property
    def changed_parent_ids(self) -> RelationDiff:
        return _merge_diffs(c.parent_ids for c in self.changes.values())

    @property
    def has_changes(self) -> bool:
        return any(not c.is_empty for c in self.changes.values())


@dataclass
class CreateTagResult:
    tag: Tag
    errors: List[RejectedRelations] = field(default_factory=list)


@dataclass
class RepairResult:
    tag_id: ObjectId
    added_child_ids: List[ObjectId] = field(default_factory=list)
    added_parent_ids: List[ObjectId] = field(default_factory=list)
    pruned_ids: List[ObjectId] = field(default_factory=list)
    cascade: Optional[CascadeResult] = None

    @property
    def repaired(self) -> bool:
        return bool(self.added_child_ids or self.added_parent_ids or self.pruned_ids)


@dataclass
class MergeResult:
    tag_id_to_keep: ObjectId
    tag_id_to_merge: ObjectId
    relinked_tag_ids: List[ObjectId] = field(default_factory=list)
    errors: List[RejectedRelations] = field(default_factory=list)
    cascade: Optional[CascadeResult] = None


@dataclass
class TagWithRelations:
    tag: Tag
    child_tags: List[Tag] = field(default_factory=list)
    parent_tags: List[Tag] = field(default_factory=list)


def _merge_diffs(diffs) -> RelationDiff:
    merged = RelationDiff()
    for diff in diffs:
        merged.added.extend(i for i in diff.added if i not in merged.added)
        merged.removed.extend(i for i in diff.removed if i not in merged.removed)
    return merged



def to_jsonable(value: Any) -> Any:
    """ObjectIds to str, recursively, for event payloads."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def tag_payload(tag: Tag) -> Dict[str, Any]:
    data = tag.to_dict()
    data.pop("_cls", None)
    data["id"] = data.pop("_id")
    return to_jsonable(data)
