"""
MediaTags - Relation Diff and Cycle Guard Tests
"""
import pytest
from bson import ObjectId

from mediatags.library.tags.closure import ClosureCalculator, HierarchyOverlay
from mediatags.library.tags.relations import CycleGuard, HierarchyValidation, diff_ids, rejected_relations


class TestDiffIds:

    def test_added_and_removed(self):
        a, b, c = ObjectId(), ObjectId(), ObjectId()

        diff = diff_ids([a, b], [b, c])

        assert diff.added == [c]
        assert diff.removed == [a]

    def test_identical_lists(self):
        a, b = ObjectId(), ObjectId()

        assert diff_ids([a, b], [b, a]).is_empty

    def test_none_is_empty(self):
        a = ObjectId()

        assert diff_ids(None, [a]).added == [a]
        assert diff_ids([a], None).removed == [a]

    def test_duplicates_collapse(self):
        a = ObjectId()

        assert diff_ids([], [a, a]).added == [a]


@pytest.fixture
def guard(tag_store):
    return CycleGuard(tag_store, ClosureCalculator(tag_store))


class TestCycleGuard:

    @pytest.mark.asyncio
    async def test_ancestor_cannot_become_child(self, tag_store, guard):
        animal = tag_store.seed("Animal")
        dog = tag_store.seed("Dog")
        tag_store.link(animal, dog)

        result = await guard.validate(dog, child_ids_to_add=[animal])

        assert result.invalid_child_ids == [animal]
        assert result.valid_child_ids == []

    @pytest.mark.asyncio
    async def test_descendant_cannot_become_parent(self, tag_store, guard):
        animal = tag_store.seed("Animal")
        dog = tag_store.seed("Dog")
        puppy = tag_store.seed("Puppy")
        tag_store.link(animal, dog)
        tag_store.link(dog, puppy)

        result = await guard.validate(animal, parent_ids_to_add=[puppy])

        assert result.invalid_parent_ids == [puppy]

    @pytest.mark.asyncio
    async def test_self_edges_rejected(self, tag_store, guard):
        tag = tag_store.seed("Self")

        result = await guard.validate(tag, [tag], [tag])

        assert result.invalid_child_ids == [tag]
        assert result.invalid_parent_ids == [tag]

    @pytest.mark.asyncio
    async def test_valid_subset_still_accepted(self, tag_store, guard):
        animal = tag_store.seed("Animal")
        dog = tag_store.seed("Dog")
        cat = tag_store.seed("Cat")
        tag_store.link(animal, dog)

        result = await guard.validate(dog, child_ids_to_add=[animal, cat])

        assert result.valid_child_ids == [cat]
        assert result.invalid_child_ids == [animal]

    @pytest.mark.asyncio
    async def test_same_tag_as_child_and_parent(self, tag_store, guard):
        tag = tag_store.seed("T")
        other = tag_store.seed("X")

        result = await guard.validate(tag, [other], [other])

        assert result.valid_child_ids == [other]
        assert result.invalid_parent_ids == [other]

    @pytest.mark.asyncio
    async def test_parent_inside_new_child_subtree(self, tag_store, guard):
        tag = tag_store.seed("T")
        child = tag_store.seed("X")
        grandchild = tag_store.seed("Y")
        tag_store.link(child, grandchild)

        result = await guard.validate(tag, [child], [grandchild])

        assert result.valid_child_ids == [child]
        assert result.invalid_parent_ids == [grandchild]

    @pytest.mark.asyncio
    async def test_shared_overlay_sees_earlier_edges(self, tag_store, guard):
        a = tag_store.seed("A")
        b = tag_store.seed("B")
        overlay = HierarchyOverlay()

        first = await guard.validate(a, child_ids_to_add=[b], overlay=overlay)
        second = await guard.validate(b, child_ids_to_add=[a], overlay=overlay)

        assert first.valid_child_ids == [b]
        assert second.invalid_child_ids == [a]

    @pytest.mark.asyncio
    async def test_describe_carries_labels(self, tag_store, guard):
        animal = tag_store.seed("Animal")
        dog = tag_store.seed("Dog")
        tag_store.link(animal, dog)

        result = await guard.validate(animal, parent_ids_to_add=[dog])
        error = await guard.describe(animal, result)

        assert error.tag_label == "Animal"
        assert [(t.id, t.label) for t in error.invalid_parent_tags] == [(dog, "Dog")]
        assert error.to_dict()["invalid_parent_tags"] == [{"id": str(dog), "label": "Dog"}]

    def test_rejected_relations_none_when_valid(self):
        assert rejected_relations(ObjectId(), HierarchyValidation(valid_child_ids=[ObjectId()]), {}) is None
