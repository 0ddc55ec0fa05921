"""
MediaTags - Relation Diff and Cycle Guard

`diff_ids` turns a requested adjacency list into the minimal add/remove
delta. `CycleGuard` drops the edges of a delta that would make a tag its
own ancestor; the remaining edges still apply.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from bson import ObjectId
from loguru import logger

from mediatags.library.tags.closure import ClosureCalculator, HierarchyOverlay
from mediatags.library.tags.results import RejectedRelations, RelationDiff, TagRef
from mediatags.library.tags.store import TagStore


def unique_ids(ids: Optional[Iterable[ObjectId]]) -> List[ObjectId]:
    return list(dict.fromkeys(ids or []))


def diff_ids(old_ids: Optional[Iterable[ObjectId]], new_ids: Optional[Iterable[ObjectId]]) -> RelationDiff:
    """
    Minimal change from `old_ids` to `new_ids`.

    Both results keep the order of their source list and hold no duplicates.
    """
    old = unique_ids(old_ids)
    new = unique_ids(new_ids)
    old_set, new_set = set(old), set(new)
    return RelationDiff(
        added=[i for i in new if i not in old_set],
        removed=[i for i in old if i not in new_set],
    )


@dataclass
class HierarchyValidation:
    valid_child_ids: List[ObjectId] = field(default_factory=list)
    invalid_child_ids: List[ObjectId] = field(default_factory=list)
    valid_parent_ids: List[ObjectId] = field(default_factory=list)
    invalid_parent_ids: List[ObjectId] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.invalid_child_ids or self.invalid_parent_ids)


def rejected_relations(tag_id: ObjectId, validation: HierarchyValidation,
                       labels: Dict[ObjectId, str]) -> Optional[RejectedRelations]:
    """Structured error for the invalid edges of a validation, or None."""
    if not validation.has_errors:
        return None
    return RejectedRelations(
        tag_id=tag_id,
        tag_label=labels.get(tag_id),
        invalid_child_tags=[TagRef(i, labels.get(i)) for i in validation.invalid_child_ids],
        invalid_parent_tags=[TagRef(i, labels.get(i)) for i in validation.invalid_parent_ids],
    )


class CycleGuard:
    """
    Validates proposed edges against the live hierarchy.

    A new child must not be the tag itself or one of its ancestors. A new
    parent must not be the tag itself or one of its descendants, counting
    the subtrees of children accepted in the same call. Accepted edges are
    recorded in the overlay so later validations in a batch see them.
    """

    def __init__(self, store: TagStore, closure: ClosureCalculator):
        self.store = store
        self.closure = closure

    async def validate(self, tag_id: ObjectId,
                       child_ids_to_add: Optional[Iterable[ObjectId]] = None,
                       parent_ids_to_add: Optional[Iterable[ObjectId]] = None,
                       overlay: Optional[HierarchyOverlay] = None) -> HierarchyValidation:
        overlay = overlay if overlay is not None else HierarchyOverlay()
        result = HierarchyValidation()

        child_ids = unique_ids(child_ids_to_add)
        parent_ids = unique_ids(parent_ids_to_add)

        if child_ids:
            ancestors = set(await self.closure.ancestors_of([tag_id], overlay=overlay))
            for child_id in child_ids:
                if child_id == tag_id or child_id in ancestors:
                    result.invalid_child_ids.append(child_id)
                else:
                    result.valid_child_ids.append(child_id)
                    overlay.add_edge(tag_id, child_id)

        if parent_ids:
            descendants = set(await self.closure.descendants_of([tag_id], overlay=overlay))
            for parent_id in parent_ids:
                if parent_id == tag_id or parent_id in descendants:
                    result.invalid_parent_ids.append(parent_id)
                else:
                    result.valid_parent_ids.append(parent_id)
                    overlay.add_edge(parent_id, tag_id)

        if result.has_errors:
            logger.warning(
                f"Rejected edges for tag {tag_id}: children={result.invalid_child_ids} "
                f"parents={result.invalid_parent_ids}"
            )
        return result

    async def describe(self, tag_id: ObjectId, validation: HierarchyValidation) -> Optional[RejectedRelations]:
        """`rejected_relations` with labels read from the store."""
        if not validation.has_errors:
            return None
        ids = [tag_id, *validation.invalid_child_ids, *validation.invalid_parent_ids]
        tags = await self.store.find(ids=ids, fields=("label",))
        return rejected_relations(tag_id, validation, {t.id: t.label for t in tags})
