"""
MongoDependentStore - Unit Tests
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from mediatags.library.models import File, FileCollection
from mediatags.library.stores import MongoDependentStore, default_dependent_stores


class AsyncCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._docs:
            raise StopAsyncIteration
        return self._docs.pop(0)


@pytest.fixture
def collection():
    coll = MagicMock()
    coll.distinct = AsyncMock(return_value=[])
    coll.update_many = AsyncMock(return_value=MagicMock(modified_count=3))
    coll.count_documents = AsyncMock(return_value=5)
    coll.find_one = AsyncMock(return_value=None)
    coll.find = MagicMock(return_value=AsyncCursor([]))
    return coll


@pytest.fixture
def store(collection):
    record_cls = MagicMock()
    record_cls.get_collection.return_value = collection
    return MongoDependentStore(record_cls, "files")


class TestQueries:

    @pytest.mark.asyncio
    async def test_find_ids_matches_either_field(self, store, collection):
        tag_id = ObjectId()

        await store.find_ids_by_tag_ids([tag_id])

        collection.distinct.assert_awaited_once_with("_id", {"$or": [
            {"tag_ids": {"$in": [tag_id]}},
            {"tag_ids_with_ancestors": {"$in": [tag_id]}},
        ]})

    @pytest.mark.asyncio
    async def test_empty_selection_skips_query(self, store, collection):
        assert await store.find_ids_by_tag_ids([]) == []
        assert await store.find_tag_refs(ids=[], tag_ids=[]) == []
        collection.distinct.assert_not_awaited()
        collection.find.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_tag_refs(self, store, collection):
        record_id, tag_id = ObjectId(), ObjectId()
        collection.find.return_value = AsyncCursor([{"_id": record_id, "tag_ids": [tag_id]}])

        (refs,) = await store.find_tag_refs(ids=[record_id], tag_ids=[tag_id])

        query = collection.find.call_args.args[0]
        assert query["$or"][0] == {"_id": {"$in": [record_id]}}
        assert refs.tag_ids == [tag_id]
        assert refs.tag_ids_with_ancestors == []

    @pytest.mark.asyncio
    async def test_earliest_thumb(self, store, collection):
        tag_id = ObjectId()
        collection.find_one.return_value = {"_id": ObjectId(), "thumb": {"path": "a.jpg"}}

        assert await store.find_earliest_thumb_by_ancestor_tag(tag_id) == {"path": "a.jpg"}
        assert collection.find_one.await_args.kwargs["sort"] == [("date_created", 1)]

    @pytest.mark.asyncio
    async def test_count(self, store, collection):
        tag_id = ObjectId()

        assert await store.count_by_ancestor_tag(tag_id) == 5
        collection.count_documents.assert_awaited_once_with({"tag_ids_with_ancestors": tag_id})


class TestUpdates:

    @pytest.mark.asyncio
    async def test_update_ancestor_field(self, store, collection):
        ids, value = [ObjectId()], [ObjectId()]

        await store.update_ancestor_field(ids, value)

        collection.update_many.assert_awaited_once_with(
            {"_id": {"$in": ids}}, {"$set": {"tag_ids_with_ancestors": value}})

    @pytest.mark.asyncio
    async def test_pull_tag_from_both_fields(self, store, collection):
        tag_id = ObjectId()

        assert await store.pull_tag(tag_id) == 3

        update = collection.update_many.await_args.args[1]
        assert update["$pull"] == {"tag_ids": tag_id, "tag_ids_with_ancestors": tag_id}
        assert "date_modified" in update["$set"]

    @pytest.mark.asyncio
    async def test_add_tags_uses_each(self, store, collection):
        ids, tag_ids = [ObjectId()], [ObjectId(), ObjectId()]

        await store.add_tags(ids, tag_ids)

        update = collection.update_many.await_args.args[1]
        assert update["$addToSet"] == {"tag_ids": {"$each": tag_ids}}

    @pytest.mark.asyncio
    async def test_noop_writes_skip_database(self, store, collection):
        assert await store.update_ancestor_field([], []) == 0
        assert await store.remove_tags([ObjectId()], []) == 0
        collection.update_many.assert_not_awaited()


def test_default_stores():
    stores = default_dependent_stores()

    assert set(stores) == {"files", "collections", "import_batches"}
    assert stores["files"].record_cls is File
    assert stores["collections"].record_cls is FileCollection
