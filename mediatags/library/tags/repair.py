"""
MediaTags - Orphan Repair

An orphan edge is listed on one side of a parent/child pair only. It is
left behind by manual edits or by a bulk write that failed half way.
Repair completes such edges rather than dropping them.
"""
from typing import List
from bson import ObjectId
from loguru import logger

from mediatags.library.models import utcnow
from mediatags.library.tags.cascade import CascadePropagator
from mediatags.library.tags.exceptions import TagNotFoundError
from mediatags.library.tags.models import RELATION_FIELDS
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.relations import unique_ids
from mediatags.library.tags.results import RelationDiff, RepairResult
from mediatags.library.tags.store import TagStore, TagUpdate


class OrphanRepair:
    def __init__(self, store: TagStore, cascade: CascadePropagator):
        self.store = store
        self.cascade = cascade
        self.planner = HierarchyMutationPlanner()

    async def repair(self, tag_id: ObjectId, notify: bool = True) -> RepairResult:
        """
        Heal the adjacency of one tag and recompute what depends on it.

        Args:
            tag_id: Tag to repair
            notify: Emit `tags.updated` from the cascade

        Returns:
            RepairResult listing the edges completed and the dangling ids pruned
        """
        tag = await self.store.find_by_id(tag_id)
        if tag is None:
            raise TagNotFoundError(tag_id)

        date_modified = utcnow()
        child_ids, parent_ids = tag.relation_ids("child_ids"), tag.relation_ids("parent_ids")
        referencing = await self.store.find_referencing(tag_id)
        neighbours = {t.id: t for t in await self.store.find(ids=[*child_ids, *parent_ids])}

        # Relation lists missing or stored as null; $addToSet and $pullAll need arrays
        ops: List[TagUpdate] = []
        for t in {t.id: t for t in [tag, *referencing, *neighbours.values()]}.values():
            non_arrays = [f for f in RELATION_FIELDS if f in t.non_array_fields()]
            if non_arrays:
                ops.append(TagUpdate([t.id], set={f: [] for f in non_arrays}))

        # Other tags naming this one without the reciprocal entry here
        added_parent_ids = [t.id for t in referencing if tag_id in t.child_ids and t.id not in parent_ids]
        added_child_ids = [t.id for t in referencing if tag_id in t.parent_ids and t.id not in child_ids]

        # Entries here whose counterpart lacks the reciprocal entry
        added_child_ids += [i for i in child_ids if i in neighbours and tag_id not in neighbours[i].parent_ids]
        added_parent_ids += [i for i in parent_ids if i in neighbours and tag_id not in neighbours[i].child_ids]
        added_child_ids = [i for i in unique_ids(added_child_ids) if i != tag_id]
        added_parent_ids = [i for i in unique_ids(added_parent_ids) if i != tag_id]

        dangling_children = [i for i in child_ids if i not in neighbours]
        dangling_parents = [i for i in parent_ids if i not in neighbours]
        pruned_ids = unique_ids([*dangling_children, *dangling_parents])
        if pruned_ids:
            pulls = {k: v for k, v in (("child_ids", dangling_children), ("parent_ids", dangling_parents)) if v}
            ops.append(TagUpdate([tag_id], set={"date_modified": date_modified}, pull_all=pulls))

        # addToSet makes the already-present half a no-op
        ops += self.planner.plan_edit(
            tag_id,
            RelationDiff(added=added_child_ids),
            RelationDiff(added=added_parent_ids),
            date_modified,
        )
        await self.store.bulk_write(ops)

        result = RepairResult(
            tag_id=tag_id,
            added_child_ids=added_child_ids,
            added_parent_ids=added_parent_ids,
            pruned_ids=pruned_ids,
        )
        if result.repaired:
            logger.warning(
                f"Repaired tag {tag.label!r}: +{len(added_child_ids)} children, "
                f"+{len(added_parent_ids)} parents, {len(pruned_ids)} dangling ids pruned"
            )

        result.cascade = await self.cascade.propagate(
            [tag_id, *added_child_ids, *added_parent_ids], extra_ref_ids=pruned_ids, notify=notify,
        )
        return result

    async def repair_legacy_regex(self) -> int:
        """
        Move `regex_map.regex` into `regex` and drop `regex_map`.

        Returns:
            Number of tags migrated
        """
        tags = await self.store.find_with_legacy_regex()
        if not tags:
            return 0

        ops = []
        for tag in tags:
            legacy = tag.regex_map if isinstance(tag.regex_map, dict) else {}
            ops.append(TagUpdate([tag.id], set={"regex": legacy.get("regex") or tag.regex}, unset=["regex_map"]))

        summary = await self.store.bulk_write(ops)
        logger.info(f"Migrated legacy regex of {len(tags)} tags ({summary.modified_count} modified)")
        return len(tags)
