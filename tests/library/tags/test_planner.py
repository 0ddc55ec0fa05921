"""
MediaTags - Mutation Planner Tests
"""
from datetime import datetime, timezone

import pytest
from bson import ObjectId

from mediatags.library.tags.planner import HierarchyMutationPlanner
from mediatags.library.tags.results import RelationDiff
from mediatags.library.tags.store import TagUpdate

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestPlanEdit:

    def test_each_side_followed_by_reciprocal(self):
        tag, child, parent = ObjectId(), ObjectId(), ObjectId()

        ops = HierarchyMutationPlanner().plan_edit(
            tag, RelationDiff(added=[child]), RelationDiff(removed=[parent]), NOW)

        assert [(op.ids, op.add_to_set, op.pull_all) for op in ops] == [
            ([tag], {"child_ids": [child]}, {}),
            ([child], {"parent_ids": [tag]}, {}),
            ([tag], {}, {"parent_ids": [parent]}),
            ([parent], {}, {"child_ids": [tag]}),
        ]
        assert all(op.set == {"date_modified": NOW} for op in ops)

    def test_empty_diffs_plan_nothing(self):
        planner = HierarchyMutationPlanner()

        assert planner.plan_edit(ObjectId(), RelationDiff(), None, NOW) == []

    def test_self_reference_dropped(self):
        tag = ObjectId()

        ops = HierarchyMutationPlanner().plan_edit(tag, RelationDiff(added=[tag]), None, NOW)

        assert ops == []


class TestOtherPlans:

    def test_detach_pulls_from_both_lists(self):
        tag, a, b = ObjectId(), ObjectId(), ObjectId()

        (op,) = HierarchyMutationPlanner().plan_detach(tag, [a, b, a, tag], NOW)

        assert op.ids == [a, b]
        assert op.pull_all == {"child_ids": [tag], "parent_ids": [tag]}

    def test_attributes_stamp_date_modified(self):
        tag = ObjectId()

        (op,) = HierarchyMutationPlanner().plan_attributes(tag, {"label": "New"}, NOW)

        assert op.set == {"label": "New", "date_modified": NOW}
        assert HierarchyMutationPlanner().plan_attributes(tag, {}, NOW) == []

    def test_plan_field_groups_equal_values(self):
        a, b, c = ObjectId(), ObjectId(), ObjectId()

        ops = HierarchyMutationPlanner().plan_field({a: 2, b: 0, c: 2}, "count")

        assert [(op.ids, op.set) for op in ops] == [([a, c], {"count": 2}), ([b], {"count": 0})]


class TestTagUpdate:

    def test_update_doc(self):
        tag = ObjectId()
        op = TagUpdate([tag], set={"count": 1}, add_to_set={"child_ids": [tag]},
                       pull_all={"parent_ids": [tag]}, unset=["regex_map"])

        assert op.to_update_doc() == {
            "$set": {"count": 1},
            "$addToSet": {"child_ids": {"$each": [tag]}},
            "$pullAll": {"parent_ids": [tag]},
            "$unset": {"regex_map": ""},
        }

    def test_conflicting_operators_rejected(self):
        with pytest.raises(ValueError):
            TagUpdate([ObjectId()], add_to_set={"child_ids": []}, pull_all={"child_ids": []})
