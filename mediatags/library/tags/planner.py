"""
MediaTags - Hierarchy Mutation Planner

Builds the tag-store writes for one logical edit. Every change to one side
of an edge is immediately followed by the matching change on the other
side, so an ordered bulk write that stops part way leaves at most one
half-written edge, which repair can heal.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from bson import ObjectId

from mediatags.library.tags.models import OPPOSITE_FIELD
from mediatags.library.tags.results import RelationDiff
from mediatags.library.tags.store import TagUpdate


class HierarchyMutationPlanner:
    """Stateless builder of `TagUpdate` lists."""

    def plan_edit(self, tag_id: ObjectId, child_diff: Optional[RelationDiff],
                  parent_diff: Optional[RelationDiff], date_modified: datetime) -> List[TagUpdate]:
        """
        Symmetric adjacency writes for one tag.

        Args:
            tag_id: Tag whose lists change
            child_diff: Ids added to / removed from its `child_ids`
            parent_diff: Ids added to / removed from its `parent_ids`
            date_modified: Stamp written on every touched tag

        Returns:
            Ordered updates; each self-side op is followed by its reciprocal
        """
        ops: List[TagUpdate] = []
        stamp = {"date_modified": date_modified}

        for field, diff in (("child_ids", child_diff), ("parent_ids", parent_diff)):
            if diff is None:
                continue
            opposite = OPPOSITE_FIELD[field]
            added = [i for i in diff.added if i != tag_id]
            removed = [i for i in diff.removed if i != tag_id]

            if added:
                ops.append(TagUpdate([tag_id], set=dict(stamp), add_to_set={field: added}))
                ops.append(TagUpdate(added, set=dict(stamp), add_to_set={opposite: [tag_id]}))
            if removed:
                ops.append(TagUpdate([tag_id], set=dict(stamp), pull_all={field: removed}))
                ops.append(TagUpdate(removed, set=dict(stamp), pull_all={opposite: [tag_id]}))
        return ops

    def plan_attributes(self, tag_id: ObjectId, updates: Dict[str, Any],
                        date_modified: datetime) -> List[TagUpdate]:
        if not updates:
            return []
        return [TagUpdate([tag_id], set={**updates, "date_modified": date_modified})]

    def plan_detach(self, tag_id: ObjectId, referencing_ids: Iterable[ObjectId],
                    date_modified: datetime) -> List[TagUpdate]:
        """Pull `tag_id` out of both adjacency lists of every referencing tag."""
        ids = [i for i in dict.fromkeys(referencing_ids) if i != tag_id]
        if not ids:
            return []
        return [TagUpdate(
            ids,
            set={"date_modified": date_modified},
            pull_all={"child_ids": [tag_id], "parent_ids": [tag_id]},
        )]

    def plan_closures(self, closures: Dict[ObjectId, Tuple[Sequence[ObjectId], Sequence[ObjectId]]]) -> List[TagUpdate]:
        return [
            TagUpdate([tag_id], set={"ancestor_ids": list(ancestors), "descendant_ids": list(descendants)})
            for tag_id, (ancestors, descendants) in closures.items()
        ]

    def plan_field(self, values: Dict[ObjectId, Any], field: str) -> List[TagUpdate]:
        """One `$set` per distinct value of `field`."""
        groups: List[Tuple[Any, List[ObjectId]]] = []
        for tag_id, value in values.items():
            for existing, ids in groups:
                if existing == value:
                    ids.append(tag_id)
                    break
            else:
                groups.append((value, [tag_id]))
        return [TagUpdate(ids, set={field: value}) for value, ids in groups]
