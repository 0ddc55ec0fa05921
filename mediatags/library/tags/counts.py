"""
MediaTags - Count & Thumbnail Recalculator

`count` is the number of files whose ancestor-inclusive tags contain the
tag; `thumb` is the thumb of the earliest-created such file.
"""
from typing import Iterable, List
from bson import ObjectId
from loguru import logger

from mediatags.core.events import Events
from mediatags.library.stores import DependentStore
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.recompute import recompute_many
from mediatags.library.tags.results import TagCountUpdate, TagThumbUpdate
from mediatags.library.tags.store import TagStore


class TagCountRecalculator:
    """
    Recomputes `count` and `thumb` for a set of tags.

    Bulk callers pass `notify=False` and emit a single event themselves.
    """

    def __init__(self, store: TagStore, files: DependentStore, events=None,
                 attempts: int = 3, concurrency: int = 16):
        self.store = store
        self.files = files
        self.events = events
        self.attempts = attempts
        self.concurrency = concurrency
        self.planner = HierarchyMutationPlanner()

    async def recalculate(self, tag_ids: Iterable[ObjectId], notify: bool = True) -> List[TagCountUpdate]:
        """
        Recount the given tags and write the counts in one bulk.

        Args:
            tag_ids: Tags to recount; unknown ids are skipped
            notify: Emit `tags.updated` with the new counts

        Returns:
            One TagCountUpdate per existing tag
        """
        existing = [t.id for t in await self.store.find(ids=list(tag_ids), fields=("_id",))]
        counts = await recompute_many(
            "count", existing, self.files.count_by_ancestor_tag,
            attempts=self.attempts, concurrency=self.concurrency,
        )
        if not counts:
            return []

        await self.store.bulk_write(self.planner.plan_field(counts, "count"))
        updates = [TagCountUpdate(tag_id, count) for tag_id, count in counts.items()]
        logger.debug(f"Recounted {len(updates)} tags")

        if notify and self.events is not None:
            self.events.emit(Events.TAGS_UPDATED, {
                "tags": [{"id": str(u.tag_id), "updates": {"count": u.count}} for u in updates],
            })
        return updates

    async def regen_thumbs(self, tag_ids: Iterable[ObjectId]) -> List[TagThumbUpdate]:
        existing = [t.id for t in await self.store.find(ids=list(tag_ids), fields=("_id",))]
        thumbs = await recompute_many(
            "thumb", existing, self.files.find_earliest_thumb_by_ancestor_tag,
            attempts=self.attempts, concurrency=self.concurrency,
        )
        if not thumbs:
            return []

        await self.store.bulk_write(self.planner.plan_field(thumbs, "thumb"))
        logger.debug(f"Regenerated thumbs of {len(thumbs)} tags")
        return [TagThumbUpdate(tag_id, thumb) for tag_id, thumb in thumbs.items()]
