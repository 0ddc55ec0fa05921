"""
MediaTags - Closure Calculator Tests
"""
import pytest
from bson import ObjectId

from mediatags.library.tags.closure import ClosureCalculator, HierarchyOverlay
from mediatags.library.tags.models import Tag


@pytest.fixture
def chain(tag_store):
    """A -> B -> C"""
    a = tag_store.seed("A")
    b = tag_store.seed("B")
    c = tag_store.seed("C")
    tag_store.link(a, b)
    tag_store.link(b, c)
    return a, b, c


class TestTraversal:

    @pytest.mark.asyncio
    async def test_ancestors_of_leaf(self, tag_store, chain):
        a, b, c = chain
        closure = ClosureCalculator(tag_store)

        assert await closure.ancestors_of([c]) == [b, a]

    @pytest.mark.asyncio
    async def test_descendants_include_seed(self, tag_store, chain):
        a, b, c = chain
        closure = ClosureCalculator(tag_store)

        assert await closure.descendants_of([a], include_seed=True) == [a, b, c]
        assert await closure.descendants_of([a]) == [b, c]

    @pytest.mark.asyncio
    async def test_diamond_visits_each_tag_once(self, tag_store):
        top = tag_store.seed("top")
        left = tag_store.seed("left")
        right = tag_store.seed("right")
        bottom = tag_store.seed("bottom")
        tag_store.link(top, left)
        tag_store.link(top, right)
        tag_store.link(left, bottom)
        tag_store.link(right, bottom)

        ancestors = await ClosureCalculator(tag_store).ancestors_of([bottom])

        assert len(ancestors) == 3
        assert set(ancestors) == {top, left, right}

    @pytest.mark.asyncio
    async def test_unknown_seed_yields_nothing(self, tag_store):
        closure = ClosureCalculator(tag_store)

        assert await closure.ancestors_of([ObjectId()]) == []
        assert await closure.descendants_of([ObjectId()], include_seed=True) == []

    @pytest.mark.asyncio
    async def test_dangling_reference_is_skipped(self, tag_store):
        ghost = ObjectId()
        tag = tag_store.seed("orphan", parent_ids=[ghost])

        assert await ClosureCalculator(tag_store).ancestors_of([tag]) == []

    @pytest.mark.asyncio
    async def test_seed_reached_from_other_seed_is_included(self, tag_store, chain):
        a, b, c = chain

        result = await ClosureCalculator(tag_store).ancestors_of([c, b])

        assert result == [b, a]

    @pytest.mark.asyncio
    async def test_one_read_per_frontier(self, tag_store, chain):
        a, b, c = chain
        calls = []
        original = tag_store.find

        async def counting_find(*args, **kwargs):
            calls.append(kwargs.get("ids"))
            return await original(*args, **kwargs)

        tag_store.find = counting_find
        await ClosureCalculator(tag_store).descendants_of([a])

        # a, then b, then c (which has no children)
        assert len(calls) == 3


class TestOverlay:

    @pytest.mark.asyncio
    async def test_added_edge_is_followed(self, tag_store, chain):
        a, b, c = chain
        x = tag_store.seed("X")
        overlay = HierarchyOverlay()
        overlay.add_edge(x, a)

        ancestors = await ClosureCalculator(tag_store).ancestors_of([c], overlay=overlay)

        assert set(ancestors) == {a, b, x}

    @pytest.mark.asyncio
    async def test_removed_edge_is_ignored(self, tag_store, chain):
        a, b, c = chain
        overlay = HierarchyOverlay()
        overlay.remove_edge(a, b)

        closure = ClosureCalculator(tag_store)

        assert await closure.ancestors_of([c], overlay=overlay) == [b]
        assert await closure.descendants_of([a], overlay=overlay) == []

    def test_add_after_remove_restores_edge(self, tag_store):
        a = tag_store.seed("A")
        b = tag_store.seed("B")
        tag_store.link(a, b)
        overlay = HierarchyOverlay()
        overlay.remove_edge(a, b)
        overlay.add_edge(a, b)

        tag = Tag.from_doc(tag_store.doc(a))

        assert overlay.neighbours(tag, "child_ids") == [b]


class TestAffectedSet:

    @pytest.mark.asyncio
    async def test_expand_affected_covers_both_directions(self, tag_store, chain):
        a, b, c = chain
        unrelated = tag_store.seed("unrelated")

        affected = await ClosureCalculator(tag_store).expand_affected([b])

        assert set(affected) == {a, b, c}
        assert unrelated not in affected

    @pytest.mark.asyncio
    async def test_expand_affected_drops_deleted_ids(self, tag_store, chain):
        a, b, c = chain

        affected = await ClosureCalculator(tag_store).expand_affected([ObjectId(), a])

        assert set(affected) == {a, b, c}

    @pytest.mark.asyncio
    async def test_closures_for(self, tag_store, chain):
        a, b, c = chain

        ancestors, descendants = await ClosureCalculator(tag_store).closures_for(b)

        assert ancestors == [a]
        assert descendants == [c]
