"""
MediaTags - Closure Calculator

Ancestor and descendant sets are computed live from adjacency, never from
the cached `ancestor_ids`/`descendant_ids`, which may be stale mid-edit.
"""
import asyncio
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple
from bson import ObjectId

from mediatags.library.tags.models import OPPOSITE_FIELD, Tag
from mediatags.library.tags.store import TagStore

_TRAVERSAL_FIELDS = ("label", "parent_ids", "child_ids")


class HierarchyOverlay:
    """
    Edges accepted or removed earlier in the same operation but not yet
    written. Traversals see stored adjacency with the overlay applied.
    """

    def __init__(self):
        self._added: Dict[str, Dict[ObjectId, Set[ObjectId]]] = {
            "child_ids": defaultdict(set), "parent_ids": defaultdict(set)}
        self._removed: Dict[str, Dict[ObjectId, Set[ObjectId]]] = {
            "child_ids": defaultdict(set), "parent_ids": defaultdict(set)}

    def add_edge(self, parent_id: ObjectId, child_id: ObjectId) -> None:
        for field, owner, other in (("child_ids", parent_id, child_id), ("parent_ids", child_id, parent_id)):
            self._removed[field][owner].discard(other)
            self._added[field][owner].add(other)

    def remove_edge(self, parent_id: ObjectId, child_id: ObjectId) -> None:
        for field, owner, other in (("child_ids", parent_id, child_id), ("parent_ids", child_id, parent_id)):
            self._added[field][owner].discard(other)
            self._removed[field][owner].add(other)

    def detach(self, tag: Tag) -> None:
        """Drop every stored edge of `tag`, e.g. a tag about to be merged away."""
        for child_id in tag.child_ids:
            self.remove_edge(tag.id, child_id)
        for parent_id in tag.parent_ids:
            self.remove_edge(parent_id, tag.id)

    def neighbours(self, tag: Tag, field: str) -> List[ObjectId]:
        removed = self._removed[field].get(tag.id, ())
        stored = [i for i in tag.relation_ids(field) if i not in removed]
        extra = [i for i in self._added[field].get(tag.id, ()) if i not in stored]
        return stored + sorted(extra, key=str)


class ClosureCalculator:
    """
    Breadth-first closure over parent/child adjacency.

    Each round fetches the whole frontier in one read. Ids that do not
    resolve to a stored tag contribute nothing and are left out.
    """

    def __init__(self, store: TagStore):
        self.store = store

    async def ancestors_of(self, seed_ids: Iterable[ObjectId], include_seed: bool = False,
                           overlay: Optional[HierarchyOverlay] = None) -> List[ObjectId]:
        return await self._traverse(seed_ids, "parent_ids", include_seed, overlay)

    async def descendants_of(self, seed_ids: Iterable[ObjectId], include_seed: bool = False,
                             overlay: Optional[HierarchyOverlay] = None) -> List[ObjectId]:
        return await self._traverse(seed_ids, "child_ids", include_seed, overlay)

    async def closures_for(self, tag_id: ObjectId,
                           overlay: Optional[HierarchyOverlay] = None) -> Tuple[List[ObjectId], List[ObjectId]]:
        """(ancestor_ids, descendant_ids) of one tag."""
        ancestors, descendants = await asyncio.gather(
            self.ancestors_of([tag_id], overlay=overlay),
            self.descendants_of([tag_id], overlay=overlay),
        )
        return ancestors, descendants

    async def expand_affected(self, tag_ids: Iterable[ObjectId]) -> List[ObjectId]:
        """
        The existing tags among `tag_ids` plus all their ancestors and
        descendants: every tag whose closure can change after an edge
        touching `tag_ids` is added or removed.
        """
        seeds = list(dict.fromkeys(tag_ids))
        ancestors, descendants = await asyncio.gather(
            self.ancestors_of(seeds, include_seed=True),
            self.descendants_of(seeds, include_seed=True),
        )
        return list(dict.fromkeys([*ancestors, *descendants]))

    async def _traverse(self, seed_ids: Iterable[ObjectId], field: str, include_seed: bool,
                        overlay: Optional[HierarchyOverlay]) -> List[ObjectId]:
        if field not in OPPOSITE_FIELD:
            raise ValueError(f"Not a relation field: {field}")

        seeds = list(dict.fromkeys(seed_ids))
        seed_set = set(seeds)
        visited: Set[ObjectId] = set(seeds)
        resolved: Set[ObjectId] = set()
        reached_seeds: Set[ObjectId] = set()
        discovered: List[ObjectId] = []

        frontier = seeds
        while frontier:
            tags = await self.store.find(ids=frontier, fields=_TRAVERSAL_FIELDS)
            by_id = {t.id: t for t in tags}
            next_frontier = []
            for tag_id in frontier:
                tag = by_id.get(tag_id)
                if tag is None:
                    continue
                resolved.add(tag_id)
                neighbours = overlay.neighbours(tag, field) if overlay else tag.relation_ids(field)
                for n in neighbours:
                    if n in seed_set:
                        # A seed reachable from another seed is a genuine member
                        reached_seeds.add(n)
                        continue
                    if n not in visited:
                        visited.add(n)
                        next_frontier.append(n)
                        discovered.append(n)
            frontier = next_frontier

        head = [s for s in seeds if s in resolved and (include_seed or s in reached_seeds)]
        return head + [i for i in discovered if i in resolved]
