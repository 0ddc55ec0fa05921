"""
MediaTags - Merge Engine

Folds one tag into another: dependent records move to the kept tag, the
merged tag's neighbours are relinked to it, the merged tag is deleted and
every derived value is recomputed.
"""
import asyncio
from typing import Any, Dict, List, Optional
from bson import ObjectId
from loguru import logger

from mediatags.core.events import Events
from mediatags.library.models import utcnow
from mediatags.library.stores import DependentStore
from mediatags.library.tags.cascade import CascadePropagator
from mediatags.library.tags.closure import HierarchyOverlay
from mediatags.library.tags.exceptions import TagMergeError, TagNotFoundError
from mediatags.library.tags.models import Tag
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.relations import CycleGuard, diff_ids, unique_ids
from mediatags.library.tags.results import MergeResult, RelationDiff, to_jsonable
from mediatags.library.tags.store import TagDelete, TagStore

ATTRIBUTE_OVERRIDES = ("label", "aliases", "regex", "category_id")


class MergeEngine:
    """
    Merges `tag_id_to_merge` into `tag_id_to_keep`.

    Overrides:
        label, aliases, regex, category_id: set on the kept tag as given
        child_ids, parent_ids: final adjacency of the kept tag; when absent
            the kept tag keeps its own lists plus the merged tag's neighbours
    """

    def __init__(self, store: TagStore, guard: CycleGuard, cascade: CascadePropagator,
                 dependents: Dict[str, DependentStore], events=None):
        self.store = store
        self.guard = guard
        self.cascade = cascade
        self.dependents = dependents
        self.events = events
        self.planner = HierarchyMutationPlanner()

    async def merge(self, tag_id_to_keep: ObjectId, tag_id_to_merge: ObjectId,
                    overrides: Optional[Dict[str, Any]] = None) -> MergeResult:
        overrides = overrides or {}
        try:
            return await self._merge(tag_id_to_keep, tag_id_to_merge, overrides)
        except Exception as e:
            logger.exception(
                f"Merge of {tag_id_to_merge} into {tag_id_to_keep} failed "
                f"(overrides={sorted(overrides)}): {e}"
            )
            raise TagMergeError(tag_id_to_keep, tag_id_to_merge, e) from e
        finally:
            self._emit_reload()

    async def _merge(self, keep_id: ObjectId, merge_id: ObjectId, overrides: Dict[str, Any]) -> MergeResult:
        date_modified = utcnow()
        keep, merge = await self._load_pair(keep_id, merge_id)

        # 1. Reassign dependent records: add first so none is left untagged
        stores = list(self.dependents.values())
        await asyncio.gather(*(s.add_tag_where(merge_id, keep_id) for s in stores))
        await asyncio.gather(*(s.pull_tag(merge_id) for s in stores))

        # 2. Relink the merged tag's neighbours to the kept tag
        referencing = await self.store.find_referencing(merge_id)
        overlay = HierarchyOverlay()
        overlay.detach(merge)
        inherited_children = list(merge.child_ids)
        inherited_parents = list(merge.parent_ids)
        for tag in referencing:
            if merge_id in tag.parent_ids:
                overlay.remove_edge(merge_id, tag.id)
                inherited_children.append(tag.id)
            if merge_id in tag.child_ids:
                overlay.remove_edge(tag.id, merge_id)
                inherited_parents.append(tag.id)

        excluded = {keep_id, merge_id}
        current_children = [i for i in keep.child_ids if i != merge_id]
        current_parents = [i for i in keep.parent_ids if i != merge_id]

        # 3. Overrides replace the lists outright
        if "child_ids" in overrides:
            target_children = [i for i in unique_ids(overrides["child_ids"]) if i not in excluded]
        else:
            target_children = current_children + [i for i in inherited_children if i not in excluded]
        if "parent_ids" in overrides:
            target_parents = [i for i in unique_ids(overrides["parent_ids"]) if i not in excluded]
        else:
            target_parents = current_parents + [i for i in inherited_parents if i not in excluded]

        child_diff = diff_ids(current_children, target_children)
        parent_diff = diff_ids(current_parents, target_parents)
        for child_id in child_diff.removed:
            overlay.remove_edge(keep_id, child_id)
        for parent_id in parent_diff.removed:
            overlay.remove_edge(parent_id, keep_id)

        validation = await self.guard.validate(keep_id, child_diff.added, parent_diff.added, overlay)
        errors = [e for e in [await self.guard.describe(keep_id, validation)] if e]

        accepted_children = RelationDiff(validation.valid_child_ids, child_diff.removed)
        accepted_parents = RelationDiff(validation.valid_parent_ids, parent_diff.removed)

        detach_ids = unique_ids([*merge.child_ids, *merge.parent_ids, *(t.id for t in referencing)])
        attributes = {k: overrides[k] for k in ATTRIBUTE_OVERRIDES if k in overrides}

        # 4. Label goes last so the merged tag's label can be taken over
        ops = [
            *self.planner.plan_detach(merge_id, detach_ids, date_modified),
            *self.planner.plan_edit(keep_id, accepted_children, accepted_parents, date_modified),
            TagDelete(merge_id),
            *self.planner.plan_attributes(keep_id, {**attributes, "date_modified": date_modified}, date_modified),
        ]
        await self.store.bulk_write(ops)

        # 5. Recompute everything the old and new edges touch
        changed = unique_ids([keep_id, *detach_ids, *accepted_children.ids(), *accepted_parents.ids()])
        changed = [i for i in changed if i != merge_id]
        cascade = await self.cascade.propagate(changed, extra_ref_ids=[merge_id], notify=False)

        # 6. Notify
        if self.events is not None:
            self.events.emit(Events.TAG_MERGED, {"old_tag_id": str(merge_id), "new_tag_id": str(keep_id)})
            self.events.emit(Events.TAGS_UPDATED, {
                "tags": [
                    *({"id": str(u.tag_id), "updates": {"count": u.count}} for u in cascade.count_updates),
                    {"id": str(keep_id), "updates": {k: to_jsonable(v) for k, v in attributes.items()}},
                ],
                "with_file_reload": True,
            })

        logger.info(f"Merged tag {merge.label!r} into {keep.label!r} ({len(changed)} tags relinked)")
        return MergeResult(
            tag_id_to_keep=keep_id,
            tag_id_to_merge=merge_id,
            relinked_tag_ids=[i for i in changed if i != keep_id],
            errors=errors,
            cascade=cascade,
        )

    async def _load_pair(self, keep_id: ObjectId, merge_id: ObjectId):
        tags = {t.id: t for t in await self.store.find(ids=[keep_id, merge_id])}
        for tag_id in (keep_id, merge_id):
            if tag_id not in tags:
                raise TagNotFoundError(tag_id)
        return tags[keep_id], tags[merge_id]

    def _emit_reload(self) -> None:
        if self.events is None:
            return
        for event in Events.RELOAD_ALL:
            self.events.emit(event)

