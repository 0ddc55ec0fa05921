"""
In-memory doubles for the tag engine's store interfaces.

They apply the same write vocabulary as the Mongo adapters, so engine tests
run without a database, plus a checker for the hierarchy invariants.
"""
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId

from mediatags.library.stores import DependentStore, TagRefs
from mediatags.library.tags.exceptions import TagValidationError, TagWriteError
from mediatags.library.tags.models import Tag
from mediatags.library.tags.store import BulkWriteSummary, TagDelete, TagStore, TagUpdate


class MemoryTagStore(TagStore):
    def __init__(self):
        self.docs: Dict[ObjectId, Dict[str, Any]] = {}
        self.bulk_calls: List[List[Any]] = []
        # Raise after applying this many ops of the next bulk write
        self.fail_after: Optional[int] = None

    # --- Test helpers ---

    def seed(self, label: str, parent_ids=(), child_ids=(), **fields) -> ObjectId:
        """Insert a raw document; adjacency is stored exactly as given."""
        tag_id = fields.pop("_id", None) or ObjectId()
        self.docs[tag_id] = {
            "_id": tag_id, "label": label, "aliases": [],
            "parent_ids": list(parent_ids), "child_ids": list(child_ids),
            "ancestor_ids": [], "descendant_ids": [], "count": 0, "thumb": None,
            **fields,
        }
        return tag_id

    def link(self, parent_id: ObjectId, child_id: ObjectId) -> None:
        """Store a symmetric edge without touching closures."""
        self.docs[parent_id]["child_ids"].append(child_id)
        self.docs[child_id]["parent_ids"].append(parent_id)

    def doc(self, tag_id: ObjectId) -> Dict[str, Any]:
        return self.docs[tag_id]

    def id_of(self, label: str) -> ObjectId:
        return next(d["_id"] for d in self.docs.values() if d["label"] == label)

    # --- TagStore ---

    async def find(self, ids=None, labels=None, fields=None) -> List[Tag]:
        if ids is not None:
            docs = [self.docs[i] for i in dict.fromkeys(ids) if i in self.docs]
        else:
            docs = list(self.docs.values())
        if labels is not None:
            wanted = set(labels)
            docs = [d for d in docs if d.get("label") in wanted]
        return [Tag.from_doc(copy.deepcopy(d)) for d in docs]

    async def find_referencing(self, tag_id) -> List[Tag]:
        return [Tag.from_doc(copy.deepcopy(d)) for d in self.docs.values()
                if tag_id in (d.get("child_ids") or []) or tag_id in (d.get("parent_ids") or [])]

    async def find_with_regex(self) -> List[Tag]:
        return [Tag.from_doc(copy.deepcopy(d)) for d in self.docs.values() if d.get("regex")]

    async def find_with_legacy_regex(self) -> List[Tag]:
        return [Tag.from_doc(copy.deepcopy(d)) for d in self.docs.values() if d.get("regex_map") is not None]

    async def insert(self, tag: Tag) -> ObjectId:
        if any(d.get("label") == tag.label for d in self.docs.values()):
            raise TagValidationError(f"Tag label already exists: {tag.label}")
        self.docs[tag.id] = tag.to_dict()
        return tag.id

    async def bulk_write(self, ops) -> BulkWriteSummary:
        ops = list(ops)
        if not ops:
            return BulkWriteSummary()
        self.bulk_calls.append(ops)

        summary = BulkWriteSummary()
        for n, op in enumerate(ops):
            if self.fail_after is not None and n >= self.fail_after:
                self.fail_after = None
                raise TagWriteError("simulated bulk failure", [o.to_log() for o in ops])
            if isinstance(op, TagDelete):
                summary.deleted_count += int(self.docs.pop(op.id, None) is not None)
                continue
            for tag_id in op.ids:
                doc = self.docs.get(tag_id)
                if doc is None:
                    continue
                summary.matched_count += 1
                _apply_update(doc, op)
                summary.modified_count += 1
        return summary

    async def delete_one(self, tag_id) -> bool:
        return self.docs.pop(tag_id, None) is not None


def _apply_update(doc: Dict[str, Any], op: TagUpdate) -> None:
    # Mongo creates a missing array but rejects array operators on any other value
    for k in [*op.add_to_set, *op.pull_all]:
        if k in doc and not isinstance(doc[k], list):
            raise TagWriteError(f"Cannot apply array update to non-array field {k!r}", [op.to_log()])
    for k, v in op.set.items():
        doc[k] = copy.deepcopy(v)
    for k, values in op.add_to_set.items():
        current = list(doc.get(k) or [])
        current.extend(v for v in values if v not in current)
        doc[k] = current
    for k, values in op.pull_all.items():
        doc[k] = [v for v in (doc.get(k) or []) if v not in values]
    for k in op.unset:
        doc.pop(k, None)


class MemoryDependentStore(DependentStore):
    _epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __init__(self, name: str):
        self.name = name
        self.docs: Dict[ObjectId, Dict[str, Any]] = {}
        self.ancestor_writes: List[List[ObjectId]] = []

    def add(self, tag_ids=(), tag_ids_with_ancestors=(), thumb=None, age: int = 0) -> ObjectId:
        """Add a record; larger `age` means created earlier."""
        record_id = ObjectId()
        self.docs[record_id] = {
            "_id": record_id,
            "tag_ids": list(tag_ids),
            "tag_ids_with_ancestors": list(tag_ids_with_ancestors),
            "thumb": thumb,
            "date_created": self._epoch + timedelta(days=len(self.docs)) - timedelta(days=age * 1000),
        }
        return record_id

    def doc(self, record_id: ObjectId) -> Dict[str, Any]:
        return self.docs[record_id]

    def _hits(self, tag_ids: Iterable[ObjectId]):
        wanted = set(tag_ids)
        return [d for d in self.docs.values()
                if wanted & set(d["tag_ids"]) or wanted & set(d["tag_ids_with_ancestors"])]

    async def find_ids_by_tag_ids(self, tag_ids) -> List[ObjectId]:
        return [d["_id"] for d in self._hits(tag_ids)]

    async def find_tag_refs(self, ids=None, tag_ids=None) -> List[TagRefs]:
        selected: Dict[ObjectId, Dict[str, Any]] = {}
        if ids is not None:
            for i in ids:
                if i in self.docs:
                    selected[i] = self.docs[i]
        if tag_ids is not None:
            for d in self._hits(tag_ids):
                selected[d["_id"]] = d
        return [TagRefs(d["_id"], list(d["tag_ids"]), list(d["tag_ids_with_ancestors"])) for d in selected.values()]

    async def update_ancestor_field(self, ids, value) -> int:
        self.ancestor_writes.append(list(ids))
        for i in ids:
            if i in self.docs:
                self.docs[i]["tag_ids_with_ancestors"] = list(value)
        return len(ids)

    async def count_by_ancestor_tag(self, tag_id) -> int:
        return sum(1 for d in self.docs.values() if tag_id in d["tag_ids_with_ancestors"])

    async def find_earliest_thumb_by_ancestor_tag(self, tag_id):
        hits = [d for d in self.docs.values() if tag_id in d["tag_ids_with_ancestors"]]
        if not hits:
            return None
        return min(hits, key=lambda d: d["date_created"])["thumb"]

    async def add_tag_where(self, has_tag_id, tag_id) -> int:
        n = 0
        for d in self.docs.values():
            if has_tag_id in d["tag_ids"] and tag_id not in d["tag_ids"]:
                d["tag_ids"].append(tag_id)
                n += 1
        return n

    async def pull_tag(self, tag_id) -> int:
        n = 0
        for d in self.docs.values():
            if tag_id in d["tag_ids"] or tag_id in d["tag_ids_with_ancestors"]:
                d["tag_ids"] = [t for t in d["tag_ids"] if t != tag_id]
                d["tag_ids_with_ancestors"] = [t for t in d["tag_ids_with_ancestors"] if t != tag_id]
                n += 1
        return n

    async def add_tags(self, ids, tag_ids) -> int:
        for i in ids:
            d = self.docs[i]
            d["tag_ids"] += [t for t in tag_ids if t not in d["tag_ids"]]
        return len(ids)

    async def remove_tags(self, ids, tag_ids) -> int:
        for i in ids:
            d = self.docs[i]
            d["tag_ids"] = [t for t in d["tag_ids"] if t not in tag_ids]
        return len(ids)


class RecordingEvents:
    """Stands in for EventBus.emit and keeps every call."""

    def __init__(self):
        self.emitted: List[tuple] = []

    def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    def names(self) -> List[str]:
        return [e for e, _ in self.emitted]

    def payloads(self, event: str) -> List[Any]:
        return [d for e, d in self.emitted if e == event]


def make_dependents() -> Dict[str, MemoryDependentStore]:
    return {
        "files": MemoryDependentStore("files"),
        "collections": MemoryDependentStore("collections"),
        "import_batches": MemoryDependentStore("import_batches"),
    }


def _closure(docs, tag_id, field) -> set:
    seen, frontier = set(), [tag_id]
    while frontier:
        nxt = []
        for i in frontier:
            for n in docs.get(i, {}).get(field) or []:
                if n in docs and n not in seen:
                    seen.add(n)
                    nxt.append(n)
        frontier = nxt
    return seen


def invariant_violations(store: MemoryTagStore, files: MemoryDependentStore,
                         collections: Optional[MemoryDependentStore] = None) -> List[str]:
    """Every broken hierarchy invariant, as readable strings."""
    docs = store.docs
    problems = []
    for tag_id, d in docs.items():
        ancestors = _closure(docs, tag_id, "parent_ids")
        descendants = _closure(docs, tag_id, "child_ids")
        if tag_id in ancestors or tag_id in descendants:
            problems.append(f"cycle through {d['label']}")
        for child_id in d.get("child_ids") or []:
            if child_id not in docs or tag_id not in (docs[child_id].get("parent_ids") or []):
                problems.append(f"{d['label']} -> child {child_id} not mirrored")
        for parent_id in d.get("parent_ids") or []:
            if parent_id not in docs or tag_id not in (docs[parent_id].get("child_ids") or []):
                problems.append(f"{d['label']} -> parent {parent_id} not mirrored")
        if set(d.get("ancestor_ids") or []) != ancestors:
            problems.append(f"stale ancestor_ids on {d['label']}")
        if set(d.get("descendant_ids") or []) != descendants:
            problems.append(f"stale descendant_ids on {d['label']}")
        expected_count = sum(1 for f in files.docs.values() if tag_id in f["tag_ids_with_ancestors"])
        if d.get("count", 0) != expected_count:
            problems.append(f"count of {d['label']} is {d.get('count')} not {expected_count}")

    for dependent in [files, collections]:
        if dependent is None:
            continue
        for rec in dependent.docs.values():
            expected = set()
            for t in rec["tag_ids"]:
                if t in docs:
                    expected |= {t} | _closure(docs, t, "parent_ids")
            if set(rec["tag_ids_with_ancestors"]) != expected:
                problems.append(f"stale tag_ids_with_ancestors on {dependent.name} {rec['_id']}")
    return problems
