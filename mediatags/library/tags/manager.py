"""
MediaTags - Tag Manager

Public entry point of the tag hierarchy engine. Every operation runs
validate -> diff -> guard -> plan -> apply -> cascade -> count -> notify.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from bson import ObjectId
from loguru import logger

from mediatags.core.base_system import BaseSystem
from mediatags.core.config import TagSettings
from mediatags.core.database.manager import DatabaseManager
from mediatags.core.events import EventBus, Events, Signal
from mediatags.library.models import utcnow
from mediatags.library.stores import DependentStore, default_dependent_stores
from mediatags.library.tags.cascade import CascadePropagator
from mediatags.library.tags.closure import ClosureCalculator, HierarchyOverlay
from mediatags.library.tags.counts import TagCountRecalculator
from mediatags.library.tags.exceptions import TagNotFoundError, TagValidationError
from mediatags.library.tags.merge import MergeEngine
from mediatags.library.tags.models import Tag
from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.relations import CycleGuard, diff_ids, unique_ids
from mediatags.library.tags.repair import OrphanRepair
from mediatags.library.tags.results import (
    CreateTagResult, MergeResult, RelationDiff, RepairResult, TagCountUpdate,
    TagEditSummary, TagRelationChange, TagWithRelations, tag_payload, to_jsonable,
)
from mediatags.library.tags.schemas import (
    CreateTagInput, EditMultiTagRelationsInput, EditTagInput, MergeTagsInput, parse_input,
)
from mediatags.library.tags.store import MongoTagStore, TagDelete, TagStore, TagWrite

# (tag_id, requested child delta, requested parent delta)
RelationEdit = Tuple[ObjectId, RelationDiff, RelationDiff]


class TagManager(BaseSystem):
    """
    Tag hierarchy service.

    Features:
    - Multi-parent tag DAG with cycle rejection
    - Materialized ancestor/descendant closures
    - Cascade of closure changes to files, collections and import batches
    - Merge, delete and orphan-edge repair

    Stores default to MongoDB; tests pass in-memory ones.
    """

    # Dependency declarations for topological startup order
    depends_on = [DatabaseManager, EventBus]

    def __init__(self, locator, config, store: Optional[TagStore] = None,
                 dependents: Optional[Dict[str, DependentStore]] = None, events=None):
        super().__init__(locator, config)
        self.store = store or MongoTagStore()
        self.dependents = dependents or default_dependent_stores()
        self.events = events
        self._wire()

    async def initialize(self) -> None:
        """Initialize tag manager."""
        logger.info("TagManager initializing")
        if self.events is None and self.locator is not None and self.locator.has_system(EventBus):
            self.events = self.locator.get_system(EventBus)
            self._wire()
        on_changed = getattr(self.config, "on_changed", None)
        if isinstance(on_changed, Signal):
            on_changed.connect(self._on_config_changed)
        await super().initialize()
        logger.info("TagManager ready")

    async def shutdown(self) -> None:
        """Shutdown tag manager."""
        logger.info("TagManager shutting down")
        on_changed = getattr(self.config, "on_changed", None)
        if isinstance(on_changed, Signal):
            on_changed.disconnect(self._on_config_changed)
        await super().shutdown()

    def _on_config_changed(self, section: str, key: str, value: Any) -> None:
        if section == "tags":
            logger.info(f"Tag settings changed: {key}={value!r}")
            self._wire()

    def _wire(self) -> None:
        settings = self.settings
        tuning = {"attempts": settings.recompute_attempts, "concurrency": settings.recompute_concurrency}

        self.closure = ClosureCalculator(self.store)
        self.guard = CycleGuard(self.store, self.closure)
        self.planner = HierarchyMutationPlanner()
        self.counts = TagCountRecalculator(self.store, self.dependents["files"], self.events, **tuning)
        self.cascade = CascadePropagator(self.store, self.closure, self.counts, self.dependents, self.events, **tuning)
        self.merger = MergeEngine(self.store, self.guard, self.cascade, self.dependents, self.events)
        self.repairer = OrphanRepair(self.store, self.cascade)

    @property
    def settings(self) -> TagSettings:
        tags = getattr(getattr(self.config, "data", None), "tags", None)
        return tags if isinstance(tags, TagSettings) else TagSettings()

    def _emit(self, event: str, data: Any = None) -> None:
        if self.events is not None:
            self.events.emit(event, data)

    # --- Validation helpers ---

    async def get_tag(self, tag_id: ObjectId) -> Tag:
        """Fetch a tag or raise TagNotFoundError."""
        tag = await self.store.find_by_id(tag_id)
        if tag is None:
            raise TagNotFoundError(tag_id)
        return tag

    async def require_tags(self, tag_ids: Iterable[ObjectId]) -> None:
        """Raise TagValidationError unless every id resolves to a tag."""
        ids = unique_ids(tag_ids)
        if not ids:
            return
        found = {t.id for t in await self.store.find(ids=ids, fields=("_id",))}
        missing = [i for i in ids if i not in found]
        if missing:
            raise TagValidationError(f"Unknown tag ids: {[str(i) for i in missing]}")

    async def _require_unique_label(self, label: str, exclude: Sequence[ObjectId] = ()) -> None:
        clashes = [t for t in await self.store.find(labels=[label], fields=("label",)) if t.id not in exclude]
        if clashes:
            raise TagValidationError(f"Tag label already exists: {label}")

    # --- Core edit pipeline ---

    async def _apply_relation_edits(self, edits: List[RelationEdit],
                                    attribute_ops: Optional[List[TagWrite]] = None,
                                    with_regen: bool = True, notify: bool = True) -> TagEditSummary:
        """
        Validate and apply adjacency deltas for one or more tags as one bulk write.

        Edits are validated in order against a shared overlay, so a later
        edit sees the edges accepted by an earlier one.
        """
        date_modified = utcnow()
        summary = TagEditSummary(date_modified=date_modified)
        overlay = HierarchyOverlay()
        tags = {t.id: t for t in await self.store.find(ids=[e[0] for e in edits])}
        ops: List[TagWrite] = list(attribute_ops or [])

        for tag_id, child_request, parent_request in edits:
            tag = tags.get(tag_id)
            if tag is None:
                raise TagNotFoundError(tag_id)

            children = set(overlay.neighbours(tag, "child_ids"))
            parents = set(overlay.neighbours(tag, "parent_ids"))

            # Drop no-op deltas: already present adds, absent removes
            child_adds = [i for i in unique_ids(child_request.added) if i not in children]
            child_removes = [i for i in unique_ids(child_request.removed) if i in children]
            parent_adds = [i for i in unique_ids(parent_request.added) if i not in parents]
            parent_removes = [i for i in unique_ids(parent_request.removed) if i in parents]

            for child_id in child_removes:
                overlay.remove_edge(tag_id, child_id)
            for parent_id in parent_removes:
                overlay.remove_edge(parent_id, tag_id)

            validation = await self.guard.validate(tag_id, child_adds, parent_adds, overlay)
            rejected = await self.guard.describe(tag_id, validation)
            if rejected:
                summary.errors.append(rejected)

            change = TagRelationChange(
                child_ids=RelationDiff(validation.valid_child_ids, child_removes),
                parent_ids=RelationDiff(validation.valid_parent_ids, parent_removes),
            )
            if change.is_empty:
                continue
            summary.changes[tag_id] = change
            ops += self.planner.plan_edit(tag_id, change.child_ids, change.parent_ids, date_modified)

        await self.store.bulk_write(ops)

        if summary.has_changes and with_regen:
            changed = unique_ids([
                *summary.changes,
                *(i for c in summary.changes.values() for i in c.endpoint_ids()),
            ])
            summary.cascade = await self.cascade.propagate(changed, notify=notify)
        return summary

    # --- Public operations ---

    async def create_tag(self, label: str, aliases: Optional[List[str]] = None,
                         parent_ids: Optional[List[ObjectId]] = None,
                         child_ids: Optional[List[ObjectId]] = None,
                         regex: Optional[str] = None, category_id: Optional[ObjectId] = None,
                         with_regen: bool = True, notify: bool = True) -> CreateTagResult:
        """
        Create a new tag, optionally linked into the hierarchy.

        Args:
            label: Unique display label
            aliases: Alternate search strings
            parent_ids: Initial parents
            child_ids: Initial children
            regex: Auto-tagging pattern
            category_id: Optional category
            with_regen: Run the closure/cascade pass for the new edges
            notify: Emit `tag.created` and `tags.updated`

        Returns:
            CreateTagResult with the stored tag and any rejected edges
        """
        data = parse_input(
            CreateTagInput, label=label, aliases=aliases or [], parent_ids=parent_ids or [],
            child_ids=child_ids or [], regex=regex, category_id=category_id,
            with_regen=with_regen, notify=notify,
        )
        await self._require_unique_label(data.label)
        await self.require_tags([*data.parent_ids, *data.child_ids])

        tag = Tag(label=data.label, aliases=list(data.aliases), regex=data.regex, category_id=data.category_id)
        await self.store.insert(tag)

        errors = []
        if data.parent_ids or data.child_ids:
            summary = await self._apply_relation_edits(
                [(tag.id, RelationDiff(added=data.child_ids), RelationDiff(added=data.parent_ids))],
                with_regen=data.with_regen, notify=data.notify,
            )
            errors = summary.errors

        created = await self.get_tag(tag.id)
        if data.notify and self.settings.notify_on_create:
            self._emit(Events.TAG_CREATED, {"tag": tag_payload(created)})

        logger.info(f"Created tag {created.label!r} ({created.id})")
        return CreateTagResult(tag=created, errors=errors)

    async def edit_tag(self, tag_id: ObjectId, **updates) -> TagEditSummary:
        """
        Edit attributes and/or adjacency of one tag.

        Args:
            tag_id: Tag to edit
            **updates: label, aliases, regex, category_id; adjacency as full
                lists (child_ids, parent_ids) or as deltas (child_ids_to_add,
                child_ids_to_remove, parent_ids_to_add, parent_ids_to_remove);
                with_regen, notify

        Returns:
            TagEditSummary of accepted changes and rejected edges
        """
        data = parse_input(EditTagInput, id=tag_id, **updates)
        tag = await self.get_tag(data.id)

        attributes = data.attribute_updates()
        if "label" in attributes and attributes["label"] != tag.label:
            await self._require_unique_label(attributes["label"], exclude=[tag.id])
        await self.require_tags(data.referenced_ids())

        if data.child_ids is not None:
            child_request = diff_ids(tag.child_ids, data.child_ids)
        else:
            child_request = RelationDiff(data.child_ids_to_add, data.child_ids_to_remove)
        if data.parent_ids is not None:
            parent_request = diff_ids(tag.parent_ids, data.parent_ids)
        else:
            parent_request = RelationDiff(data.parent_ids_to_add, data.parent_ids_to_remove)

        attribute_ops = self.planner.plan_attributes(tag.id, attributes, utcnow())
        summary = await self._apply_relation_edits(
            [(tag.id, child_request, parent_request)],
            attribute_ops=attribute_ops, with_regen=data.with_regen, notify=data.notify,
        )

        if attributes and data.notify:
            self._emit(Events.TAGS_UPDATED, {
                "tags": [{"id": str(tag.id), "updates": to_jsonable(attributes)}],
                "with_file_reload": False,
            })
        logger.info(f"Edited tag {tag.label!r}: {len(summary.changes)} relation changes, "
                    f"{len(summary.errors)} rejected")
        return summary

    async def edit_multi_tag_relations(self, tag_ids: List[ObjectId],
                                       child_ids_to_add: Optional[List[ObjectId]] = None,
                                       child_ids_to_remove: Optional[List[ObjectId]] = None,
                                       parent_ids_to_add: Optional[List[ObjectId]] = None,
                                       parent_ids_to_remove: Optional[List[ObjectId]] = None,
                                       notify: bool = True) -> TagEditSummary:
        """
        Apply the same adjacency delta to several tags in one bulk write.

        Edges that would form a cycle are dropped per tag and reported in
        `errors`; the rest of the batch still applies.
        """
        data = parse_input(
            EditMultiTagRelationsInput, tag_ids=tag_ids,
            child_ids_to_add=child_ids_to_add or [], child_ids_to_remove=child_ids_to_remove or [],
            parent_ids_to_add=parent_ids_to_add or [], parent_ids_to_remove=parent_ids_to_remove or [],
            notify=notify,
        )
        await self.require_tags(data.referenced_ids())

        edits = [
            (tag_id,
             RelationDiff(data.child_ids_to_add, data.child_ids_to_remove),
             RelationDiff(data.parent_ids_to_add, data.parent_ids_to_remove))
            for tag_id in unique_ids(data.tag_ids)
        ]
        summary = await self._apply_relation_edits(edits, notify=data.notify)
        logger.info(f"Edited relations of {len(edits)} tags: {len(summary.changes)} changed, "
                    f"{len(summary.errors)} with rejected edges")
        return summary

    async def delete_tag(self, tag_id: ObjectId, notify: bool = True) -> None:
        """
        Delete a tag, unlinking it from every tag and dependent record.

        Args:
            tag_id: Tag to delete
            notify: Emit `tag.deleted` and `tags.updated`
        """
        tag = await self.get_tag(tag_id)
        date_modified = utcnow()

        await asyncio.gather(*(s.pull_tag(tag.id) for s in self.dependents.values()))

        referencing = await self.store.find_referencing(tag.id)
        neighbour_ids = unique_ids([*tag.child_ids, *tag.parent_ids, *(t.id for t in referencing)])
        neighbour_ids = [i for i in neighbour_ids if i != tag.id]

        ops = [*self.planner.plan_detach(tag.id, neighbour_ids, date_modified), TagDelete(tag.id)]
        await self.store.bulk_write(ops)

        await self.cascade.propagate(neighbour_ids, extra_ref_ids=[tag.id], notify=notify)
        if notify:
            self._emit(Events.TAG_DELETED, {"ids": [str(tag.id)]})
        logger.info(f"Deleted tag {tag.label!r} ({tag.id})")

    async def merge_tags(self, tag_id_to_keep: ObjectId, tag_id_to_merge: ObjectId, **overrides) -> MergeResult:
        """
        Fold `tag_id_to_merge` into `tag_id_to_keep` and delete it.

        Args:
            tag_id_to_keep: Surviving tag
            tag_id_to_merge: Tag to absorb
            **overrides: label, aliases, regex, category_id, child_ids, parent_ids
                for the surviving tag

        Raises:
            TagValidationError: bad input, nothing written
            TagMergeError: failure during the merge itself
        """
        data = parse_input(MergeTagsInput, tag_id_to_keep=tag_id_to_keep,
                           tag_id_to_merge=tag_id_to_merge, **overrides)
        await self.require_tags([data.tag_id_to_keep, data.tag_id_to_merge])

        merge_overrides = data.overrides()
        if "label" in merge_overrides:
            await self._require_unique_label(
                merge_overrides["label"], exclude=[data.tag_id_to_keep, data.tag_id_to_merge])
        await self.require_tags([*merge_overrides.get("child_ids", []), *merge_overrides.get("parent_ids", [])])

        return await self.merger.merge(data.tag_id_to_keep, data.tag_id_to_merge, merge_overrides)

    async def recalculate_tag_counts(self, tag_ids: List[ObjectId], notify: bool = True) -> List[TagCountUpdate]:
        """Recount the given tags from the file store."""
        return await self.counts.recalculate(unique_ids(tag_ids), notify=notify)

    async def refresh_tag_relations(self, tag_id: ObjectId, notify: bool = True) -> RepairResult:
        """Complete orphan edges of a tag and recompute what depends on it."""
        return await self.repairer.repair(tag_id, notify=notify)

    # --- Supplementary operations ---

    async def refresh_tag(self, tag_id: ObjectId) -> Tag:
        """
        Full refresh of one tag: repair, closures, count and thumb.

        Returns:
            The refreshed tag
        """
        await self.repairer.repair(tag_id, notify=False)
        tag = await self.get_tag(tag_id)
        self._emit(Events.TAGS_UPDATED, {
            "tags": [{"id": str(tag.id), "updates": tag_payload(tag)}],
            "with_file_reload": True,
        })
        return tag

    async def upsert_tag(self, label: str, parent_labels: Optional[List[str]] = None) -> Tag:
        """
        Find a tag by label or create it, then link it under the given parents.

        Parents are upserted the same way. Existing parents are kept.
        """
        label = (label or "").strip()
        if not label:
            raise TagValidationError("Label must not be blank")

        parent_ids = []
        for parent_label in parent_labels or []:
            parent_ids.append((await self.upsert_tag(parent_label)).id)

        existing = await self.store.find(labels=[label])
        if existing:
            tag = existing[0]
            if parent_ids:
                await self.edit_tag(tag.id, parent_ids_to_add=parent_ids, notify=False)
                tag = await self.get_tag(tag.id)
            return tag

        result = await self.create_tag(label, parent_ids=parent_ids, notify=False)
        return result.tag

    async def get_tag_with_relations(self, tag_id: ObjectId) -> TagWithRelations:
        tag = await self.get_tag(tag_id)
        child_tags, parent_tags = await asyncio.gather(
            self.store.find(ids=tag.child_ids),
            self.store.find(ids=tag.parent_ids),
        )
        return TagWithRelations(tag=tag, child_tags=child_tags, parent_tags=parent_tags)

    async def list_tag_ancestor_labels(self, tag_id: ObjectId) -> List[str]:
        """Labels of a tag's ancestors, most used first."""
        tag = await self.store.find_by_id(tag_id)
        if tag is None:
            return []
        ancestors = await self.store.find(ids=[i for i in tag.ancestor_ids if i != tag.id])
        ancestors.sort(key=lambda t: t.count or 0, reverse=True)
        return [t.label for t in ancestors]

    async def list_tags_by_labels(self, labels: List[str]) -> List[Tag]:
        return await self.store.find(labels=list(labels))

    async def list_regex_maps(self) -> List[Dict[str, str]]:
        return [{"id": str(t.id), "regex": t.regex} for t in await self.store.find_with_regex()]

    async def repair_legacy_regex(self) -> int:
        return await self.repairer.repair_legacy_regex()

