"""
MediaTags - Cascade Propagator

After adjacency changes, brings every derived value back in line with the
graph: tag closures, the `tag_ids_with_ancestors` of dependent records, and
tag thumbs and counts. Only records that reference an affected tag are read,
and only those whose value actually changed are written.
"""
import asyncio
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from bson import ObjectId
from loguru import logger

from mediatags.core.events import Events
from mediatags.library.stores import DependentStore, TagRefs
from mediatags.library.tags.closure import ClosureCalculator
from mediatags.library.tags.counts import TagCountRecalculator
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.recompute import recompute_many
from mediatags.library.tags.results import CascadeResult
from mediatags.library.tags.store import TagStore

Closures = Dict[ObjectId, Tuple[List[ObjectId], List[ObjectId]]]


def ancestor_inclusive_ids(tag_ids: Sequence[ObjectId], ancestors: Dict[ObjectId, List[ObjectId]]) -> List[ObjectId]:
    """Union of `{t} + ancestors(t)` over direct tags; unknown tags contribute nothing."""
    out: Dict[ObjectId, None] = {}
    for tag_id in tag_ids:
        if tag_id not in ancestors:
            continue
        out[tag_id] = None
        for ancestor_id in ancestors[tag_id]:
            out[ancestor_id] = None
    return list(out)


class CascadePropagator:
    """
    Runs the derived-value passes for a set of changed tags.

    `dependents` maps a store name ("files", "collections", "import_batches")
    to the stores whose ancestor field mirrors the graph.
    """

    def __init__(self, store: TagStore, closure: ClosureCalculator, counts: TagCountRecalculator,
                 dependents: Dict[str, DependentStore], events=None,
                 attempts: int = 3, concurrency: int = 16):
        self.store = store
        self.closure = closure
        self.counts = counts
        self.dependents = dependents
        self.events = events
        self.attempts = attempts
        self.concurrency = concurrency
        self.planner = HierarchyMutationPlanner()

    async def propagate(self, changed_tag_ids: Iterable[ObjectId],
                        extra_ref_ids: Iterable[ObjectId] = (),
                        notify: bool = True) -> CascadeResult:
        """
        Recompute everything derived from the changed tags.

        Args:
            changed_tag_ids: Tags whose adjacency changed, plus every edge endpoint
            extra_ref_ids: Ids no longer in the graph (deleted or merged) that
                dependent records may still mention
            notify: Emit one batched `tags.updated` at the end

        Returns:
            CascadeResult with the affected tags, rewritten records and counts
        """
        affected = await self.closure.expand_affected(changed_tag_ids)
        logger.debug(f"Cascade: {len(affected)} affected tags")

        closures = await self.regen_closures(affected)
        updated = await self.regen_dependents(tag_ids=[*affected, *extra_ref_ids])

        _, count_updates = await asyncio.gather(
            self.counts.regen_thumbs(affected),
            self.counts.recalculate(affected, notify=False),
        )

        if notify and self.events is not None and affected:
            counts = {u.tag_id: u.count for u in count_updates}
            self.events.emit(Events.TAGS_UPDATED, {
                "tags": [
                    {
                        "id": str(tag_id),
                        "updates": {
                            "ancestor_ids": [str(i) for i in closures.get(tag_id, ([], []))[0]],
                            "descendant_ids": [str(i) for i in closures.get(tag_id, ([], []))[1]],
                            "count": counts.get(tag_id),
                        },
                    }
                    for tag_id in affected
                ],
                "with_file_reload": any(updated.values()),
            })

        return CascadeResult(affected_tag_ids=affected, updated_records=updated, count_updates=count_updates)

    async def regen_closures(self, tag_ids: Iterable[ObjectId]) -> Closures:
        """Recompute and store `ancestor_ids`/`descendant_ids` for the given tags."""
        closures = await recompute_many(
            "closure", tag_ids, self.closure.closures_for,
            attempts=self.attempts, concurrency=self.concurrency,
        )
        await self.store.bulk_write(self.planner.plan_closures(closures))
        return closures

    async def regen_dependents(self, file_ids: Optional[Iterable[ObjectId]] = None,
                               collection_ids: Optional[Iterable[ObjectId]] = None,
                               batch_ids: Optional[Iterable[ObjectId]] = None,
                               tag_ids: Optional[Iterable[ObjectId]] = None) -> Dict[str, List[ObjectId]]:
        """
        Rewrite `tag_ids_with_ancestors` of the selected dependent records.

        Records are selected by id and/or by referencing any of `tag_ids`.

        Returns:
            Store name -> ids of records whose value changed
        """
        tag_ids = list(tag_ids) if tag_ids is not None else None
        selections = {"files": file_ids, "collections": collection_ids, "import_batches": batch_ids}

        names = list(self.dependents)
        results = await asyncio.gather(*(
            self._regen_store(self.dependents[name], selections.get(name), tag_ids) for name in names
        ))
        return dict(zip(names, results))

    async def _regen_store(self, dependent: DependentStore, ids: Optional[Iterable[ObjectId]],
                           tag_ids: Optional[List[ObjectId]]) -> List[ObjectId]:
        refs = await dependent.find_tag_refs(ids=ids, tag_ids=tag_ids)
        if not refs:
            return []

        ancestors = await self._ancestor_map({t for r in refs for t in r.tag_ids})
        groups: Dict[Tuple[ObjectId, ...], List[ObjectId]] = {}
        for ref in refs:
            value = ancestor_inclusive_ids(ref.tag_ids, ancestors)
            if set(value) != set(ref.tag_ids_with_ancestors):
                groups.setdefault(tuple(value), []).append(ref.id)

        changed: List[ObjectId] = []
        for value, record_ids in groups.items():
            await dependent.update_ancestor_field(record_ids, list(value))
            changed.extend(record_ids)

        logger.debug(f"[{dependent.name}] {len(changed)}/{len(refs)} records had stale ancestors")
        return changed

    async def _ancestor_map(self, tag_ids) -> Dict[ObjectId, List[ObjectId]]:
        if not tag_ids:
            return {}
        tags = await self.store.find(ids=list(tag_ids), fields=("ancestor_ids",))
        return {t.id: list(t.ancestor_ids) for t in tags}
