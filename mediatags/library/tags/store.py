"""
MediaTags - Tag Store Adapter

Boundary between the hierarchy engine and the document store. The engine
only speaks the small write vocabulary below (`TagUpdate`, `TagDelete`);
`MongoTagStore` translates it into pymongo bulk operations.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from bson import ObjectId
from loguru import logger
from pymongo import DeleteOne, UpdateMany, UpdateOne
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from mediatags.library.tags.exceptions import TagValidationError, TagWriteError
from mediatags.library.tags.models import Tag


@dataclass
class TagUpdate:
    """
    One update applied to every tag in `ids`.

    Maps to `$set`, `$addToSet` (with `$each`), `$pullAll` and `$unset`.
    A field must not appear under more than one operator.
    """
    ids: List[ObjectId]
    set: Dict[str, Any] = field(default_factory=dict)
    add_to_set: Dict[str, List[ObjectId]] = field(default_factory=dict)
    pull_all: Dict[str, List[ObjectId]] = field(default_factory=dict)
    unset: List[str] = field(default_factory=list)

    def __post_init__(self):
        touched = [*self.set, *self.add_to_set, *self.pull_all, *self.unset]
        if len(touched) != len(set(touched)):
            raise ValueError(f"Conflicting operators on the same field: {touched}")

    def to_update_doc(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        if self.set:
            doc["$set"] = dict(self.set)
        if self.add_to_set:
            doc["$addToSet"] = {k: {"$each": list(v)} for k, v in self.add_to_set.items()}
        if self.pull_all:
            doc["$pullAll"] = {k: list(v) for k, v in self.pull_all.items()}
        if self.unset:
            doc["$unset"] = {k: "" for k in self.unset}
        return doc

    def to_log(self) -> Dict[str, Any]:
        return {"ids": [str(i) for i in self.ids], "update": repr(self.to_update_doc())}


@dataclass
class TagDelete:
    id: ObjectId

    def to_log(self) -> Dict[str, Any]:
        return {"delete": str(self.id)}


TagWrite = Union[TagUpdate, TagDelete]


@dataclass
class BulkWriteSummary:
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0


class TagStore(ABC):
    """Persisted tag records. Implementations must apply bulk ops in order."""

    @abstractmethod
    async def find(self, ids: Optional[Iterable[ObjectId]] = None,
                   labels: Optional[Iterable[str]] = None,
                   fields: Optional[Sequence[str]] = None) -> List[Tag]:
        """Tags matching ids and/or labels; all tags when both are None."""

    async def find_by_id(self, tag_id: ObjectId) -> Optional[Tag]:
        found = await self.find(ids=[tag_id])
        return found[0] if found else None

    @abstractmethod
    async def find_referencing(self, tag_id: ObjectId) -> List[Tag]:
        """Tags listing `tag_id` in their `child_ids` or `parent_ids`."""

    @abstractmethod
    async def find_with_regex(self) -> List[Tag]:
        """Tags with a non-empty `regex`."""

    @abstractmethod
    async def find_with_legacy_regex(self) -> List[Tag]:
        """Tags still carrying the legacy `regex_map` attribute."""

    @abstractmethod
    async def insert(self, tag: Tag) -> ObjectId:
        """Insert a new tag; duplicate labels raise TagValidationError."""

    @abstractmethod
    async def bulk_write(self, ops: Sequence[TagWrite]) -> BulkWriteSummary:
        """Apply ops in order as one unit; failures raise TagWriteError."""

    @abstractmethod
    async def delete_one(self, tag_id: ObjectId) -> bool:
        """Delete one tag; False when it did not exist. The engine deletes through `bulk_write`."""

    async def update_many(self, op: TagUpdate) -> BulkWriteSummary:
        """Single-update shortcut for callers outside the engine."""
        return await self.bulk_write([op])


class MongoTagStore(TagStore):
    """TagStore over the `tags` collection."""

    def __init__(self, record_cls=Tag):
        self.record_cls = record_cls

    async def find(self, ids=None, labels=None, fields=None) -> List[Tag]:
        query: Dict[str, Any] = {}
        if ids is not None:
            id_list = list(dict.fromkeys(ids))
            if not id_list:
                return []
            query["_id"] = {"$in": id_list}
        if labels is not None:
            label_list = list(labels)
            if not label_list:
                return []
            query["label"] = {"$in": label_list}
        projection = {name: 1 for name in fields} if fields else None
        return await self.record_cls.find(query, projection)

    async def find_referencing(self, tag_id: ObjectId) -> List[Tag]:
        return await self.record_cls.find({"$or": [{"child_ids": tag_id}, {"parent_ids": tag_id}]})

    async def find_with_regex(self) -> List[Tag]:
        return await self.record_cls.find({"regex": {"$exists": True, "$nin": [None, ""]}})

    async def find_with_legacy_regex(self) -> List[Tag]:
        return await self.record_cls.find({"regex_map": {"$exists": True, "$ne": None}})

    async def insert(self, tag: Tag) -> ObjectId:
        try:
            await self.record_cls.get_collection().insert_one(tag.to_dict())
        except DuplicateKeyError as e:
            raise TagValidationError(f"Tag label already exists: {tag.label}") from e
        return tag.id

    async def bulk_write(self, ops: Sequence[TagWrite]) -> BulkWriteSummary:
        if not ops:
            return BulkWriteSummary()

        requests = [self._to_request(op) for op in ops]
        try:
            res = await self.record_cls.get_collection().bulk_write(requests, ordered=True)
        except BulkWriteError as e:
            payload = [op.to_log() for op in ops]
            logger.error(f"Tag bulk write failed after {e.details.get('nModified', 0)} modifications: {payload}")
            raise TagWriteError(f"Tag bulk write failed: {e}", payload) from e
        except PyMongoError as e:
            payload = [op.to_log() for op in ops]
            logger.error(f"Tag bulk write failed: {e} {payload}")
            raise TagWriteError(f"Tag bulk write failed: {e}", payload) from e

        return BulkWriteSummary(
            matched_count=res.matched_count,
            modified_count=res.modified_count,
            deleted_count=res.deleted_count,
        )

    async def delete_one(self, tag_id: ObjectId) -> bool:
        res = await self.record_cls.get_collection().delete_one({"_id": tag_id})
        return res.deleted_count > 0

    @staticmethod
    def _to_request(op: TagWrite):
        if isinstance(op, TagDelete):
            return DeleteOne({"_id": op.id})
        if len(op.ids) == 1:
            return UpdateOne({"_id": op.ids[0]}, op.to_update_doc())
        return UpdateMany({"_id": {"$in": list(op.ids)}}, op.to_update_doc())
