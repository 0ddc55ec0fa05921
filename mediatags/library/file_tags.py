"""
MediaTags - File Tagging

Direct tag assignment on files. Keeps the `tag_ids_with_ancestors` of each
file and import batch, and the touched tags' counts and thumbs, in line with
the change.
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional
from bson import ObjectId
from loguru import logger

from mediatags.core.base_system import BaseSystem
from mediatags.core.events import Events
from mediatags.library.tags.manager import TagManager
from mediatags.library.tags.relations import unique_ids
from mediatags.library.tags.results import TagCountUpdate
from mediatags.library.tags.schemas import EditFileTagsInput, parse_input


@dataclass
class FileTagEditResult:
    file_ids: List[ObjectId]
    # Files whose ancestor-inclusive tags changed
    updated_file_ids: List[ObjectId] = field(default_factory=list)
    count_updates: List[TagCountUpdate] = field(default_factory=list)


class FileTagService(BaseSystem):
    """Adds and removes direct tags on files (and on their import batch)."""

    depends_on = [TagManager]

    def __init__(self, locator, config, tag_manager: Optional[TagManager] = None):
        super().__init__(locator, config)
        self.tag_manager = tag_manager

    async def initialize(self) -> None:
        logger.info("FileTagService initializing")
        if self.tag_manager is None:
            self.tag_manager = self.locator.get_system(TagManager)
        await super().initialize()
        logger.info("FileTagService ready")

    async def shutdown(self) -> None:
        await super().shutdown()

    async def edit_file_tags(self, file_ids: List[ObjectId],
                             added_tag_ids: Optional[List[ObjectId]] = None,
                             removed_tag_ids: Optional[List[ObjectId]] = None,
                             batch_id: Optional[ObjectId] = None,
                             notify: bool = True) -> FileTagEditResult:
        """
        Add and/or remove direct tags on a set of files.

        Args:
            file_ids: Files to edit
            added_tag_ids: Tags to add; must exist
            removed_tag_ids: Tags to remove
            batch_id: Import batch whose tag list gets the same change
            notify: Emit `files.tags_updated` and `tags.updated`

        Returns:
            FileTagEditResult with the files whose ancestor tags changed and
            the recounted tags
        """
        data = parse_input(
            EditFileTagsInput, file_ids=file_ids, added_tag_ids=added_tag_ids or [],
            removed_tag_ids=removed_tag_ids or [], batch_id=batch_id, notify=notify,
        )
        tm = self.tag_manager
        await tm.require_tags(data.added_tag_ids)

        file_ids = unique_ids(data.file_ids)
        added, removed = unique_ids(data.added_tag_ids), unique_ids(data.removed_tag_ids)
        files = tm.dependents["files"]

        await files.add_tags(file_ids, added)
        await files.remove_tags(file_ids, removed)
        if data.batch_id is not None and "import_batches" in tm.dependents:
            batches = tm.dependents["import_batches"]
            await batches.add_tags([data.batch_id], added)
            await batches.remove_tags([data.batch_id], removed)

        batch_ids = [data.batch_id] if data.batch_id is not None else None
        updated = await tm.cascade.regen_dependents(file_ids=file_ids, batch_ids=batch_ids)
        updated_file_ids = updated.get("files", [])

        # Counts move for the tags themselves and every ancestor
        touched = await tm.closure.ancestors_of([*added, *removed], include_seed=True)
        count_updates, _ = await asyncio.gather(
            tm.counts.recalculate(touched, notify=False),
            tm.counts.regen_thumbs(touched),
        )

        if data.notify and tm.events is not None:
            tm.events.emit(Events.FILE_TAGS_UPDATED, {
                "file_ids": [str(i) for i in file_ids],
                "added_tag_ids": [str(i) for i in added],
                "removed_tag_ids": [str(i) for i in removed],
                "batch_id": str(data.batch_id) if data.batch_id else None,
            })
            tm.events.emit(Events.TAGS_UPDATED, {
                "tags": [{"id": str(u.tag_id), "updates": {"count": u.count}} for u in count_updates],
                "with_file_reload": False,
            })

        logger.info(f"Edited tags of {len(file_ids)} files: +{len(added)} -{len(removed)} tags, "
                    f"{len(updated_file_ids)} ancestor sets rewritten")
        return FileTagEditResult(file_ids=file_ids, updated_file_ids=updated_file_ids, count_updates=count_updates)
